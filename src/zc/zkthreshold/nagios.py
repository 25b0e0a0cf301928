##############################################################################
#
# Copyright (c) 2011 Zope Foundation and Contributors.
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
"""%prog [options]

Run a ZooKeeper command (e.g. 'mntr'), find a metric in the result and
check its value against minimum and/or maximum thresholds.

Example:

  %prog --metric zk_synced_followers --leader_only --mincrit 2
"""
import collections
import logging
import optparse
import re
import sys

from zc.zkthreshold import fourletter

logger = logging.getLogger('zc.zkthreshold')

OK, WARNING, CRITICAL, UNKNOWN = range(4)
status_names = 'OK', 'WARNING', 'CRITICAL', 'UNKNOWN'

check_name = 'ZookeeperThreshold'

Config = collections.namedtuple(
    'Config',
    'host port leader_only zk_command metric'
    ' minwarn maxwarn mincrit maxcrit timeout',
    defaults=('localhost', 2181, False, 'mntr', None,
              None, None, None, None, 10.0),
    )

Result = collections.namedtuple('Result', 'status message')

metric_help = """Metric to threshold check

The metric name is used as a regular expression matched against the
start of a response line, so characters like '.' aren't taken literally.
"""

def check(config):
    """Check a metric of a ZooKeeper server against config thresholds

    Returns a Result.  Nothing is printed.
    """
    metric = config.metric
    if not metric:
        return Result(UNKNOWN, "No metric specified, use --metric")

    try:
        pattern = re.compile(r'^%s\s+(\d+)$' % metric, re.MULTILINE)
    except re.error as err:
        return Result(UNKNOWN, "Invalid metric pattern %s: %s" % (metric, err))

    try:
        config.zk_command.encode('ascii')
    except UnicodeEncodeError:
        return Result(
            UNKNOWN, "Invalid ZooKeeper command %r" % config.zk_command)

    try:
        if config.leader_only:
            response = fourletter.command(
                config.host, config.port, 'srvr', config.timeout)
            # srvr starts with the version line; Mode can be on any line.
            if not re.search(r'^Mode: leader$', response, re.MULTILINE):
                logger.info('%s:%s is not the leader, skipping %s',
                            config.host, config.port, metric)
                return Result(
                    OK, "Check run on a follower, but run as leader_only")

        response = fourletter.command(
            config.host, config.port, config.zk_command, config.timeout)
    except fourletter.FailedConnect as err:
        logger.warning("Can't connect %s", err)
        return Result(UNKNOWN, "Can't connect %s" % err)

    m = pattern.search(response)
    if m is None:
        return Result(
            UNKNOWN,
            "%s not found. If the metric is only present on leaders,"
            " run with --leader_only" % metric)

    found = m.group(1)
    value = float(found)

    if config.mincrit is not None and value < config.mincrit:
        return Result(CRITICAL, "%s %s less than %s"
                      % (metric, found, config.mincrit))
    if config.maxcrit is not None and value > config.maxcrit:
        return Result(CRITICAL, "%s %s exceeds %s"
                      % (metric, found, config.maxcrit))
    if config.minwarn is not None and value < config.minwarn:
        return Result(WARNING, "%s %s less than %s"
                      % (metric, found, config.minwarn))
    if config.maxwarn is not None and value > config.maxwarn:
        return Result(WARNING, "%s %s exceeds %s"
                      % (metric, found, config.maxwarn))

    return Result(OK, "%s: %s" % (metric, value))

def main(args=None):
    if args is None:
        args = sys.argv[1:]

    parser = optparse.OptionParser(__doc__)
    parser.add_option('--host', default='localhost', help="ZooKeeper host")
    parser.add_option('--port', type='int', default=2181,
                      help="ZooKeeper port")
    parser.add_option(
        '--leader_only', action='store_true', default=False,
        help="If the server isn't the leader, cut the check short and"
        " return OK.  Some values are only present on leaders.",
        )
    parser.add_option('--zk_command', default='mntr',
                      help="ZooKeeper command/four-letter-word")
    parser.add_option('--metric', help=metric_help)
    for name in ('minwarn', 'maxwarn', 'mincrit', 'maxcrit'):
        parser.add_option('--' + name, type='float')
    parser.add_option(
        '-t', '--timeout', type='float', default=10.0,
        help="Seconds to wait for the server to connect or respond",
        )
    parser.add_option('-v', '--verbose', action='store_true',
                      help="Log debugging information to standard error")
    (options, args) = parser.parse_args(args)

    if options.verbose:
        logging.basicConfig(level=logging.DEBUG)

    config = Config(
        host=options.host,
        port=options.port,
        leader_only=options.leader_only,
        zk_command=options.zk_command,
        metric=options.metric,
        minwarn=options.minwarn,
        maxwarn=options.maxwarn,
        mincrit=options.mincrit,
        maxcrit=options.maxcrit,
        timeout=options.timeout,
        )

    status, message = check(config)
    logger.debug('%s: %s', status_names[status], message)
    print("%s %s: %s" % (check_name, status_names[status], message))
    return status
