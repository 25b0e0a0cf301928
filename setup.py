##############################################################################
#
# Copyright (c) Zope Foundation and Contributors.
# All Rights Reserved.
#
# This software is subject to the provisions of the Zope Public License,
# Version 2.1 (ZPL).  A copy of the ZPL should accompany this distribution.
# THIS SOFTWARE IS PROVIDED "AS IS" AND ANY AND ALL EXPRESS OR IMPLIED
# WARRANTIES ARE DISCLAIMED, INCLUDING, BUT NOT LIMITED TO, THE IMPLIED
# WARRANTIES OF TITLE, MERCHANTABILITY, AGAINST INFRINGEMENT, AND FITNESS
# FOR A PARTICULAR PURPOSE.
#
##############################################################################
name, version = 'zc.zkthreshold', '0.1.0'

install_requires = ['setuptools']
extras_require = dict(
    test=['zope.testing', 'manuel', 'mock', 'zc.thread', 'pytest'],
    )

entry_points = """
[console_scripts]
zkthreshold = zc.zkthreshold.nagios:main
"""

from setuptools import setup

import os
here = os.path.dirname(os.path.abspath(__file__))
with open(
    os.path.join(here, *(['src'] + name.split('.') + ['README.txt']))
    ) as inp:
    long_description = inp.read()

setup(
    author = 'Zope Foundation and Contributors',
    author_email = 'zope-dev@zope.org',
    license = 'ZPL 2.1',

    name = name, version = version,
    long_description = long_description,
    description = long_description.strip().split('\n')[0],
    packages = [name],
    package_dir = {'': 'src'},
    install_requires = install_requires,
    python_requires = '>=3.7',
    zip_safe = False,
    entry_points = entry_points,
    package_data = {name: ['*.txt']},
    extras_require = extras_require,
    )
