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
"""Send ZooKeeper four-letter words.

ZooKeeper answers a handful of short plaintext commands (``mntr``,
``srvr``, ``ruok``, ...) on its client port.  There's no framing: we
write the command, tell the server we're done writing, and read until
it hangs up.
"""
import logging
import socket

logger = logging.getLogger('zc.zkthreshold')

class FailedConnect(ConnectionError):
    """Couldn't talk to a ZooKeeper server
    """

def command(host, port, word, timeout=None):
    """Send a four-letter word to a server and return its response text.

    ``timeout`` applies to the connect and to each read and write.
    """
    addr = host, int(port)
    logger.debug('Sending %r to %s:%s', word, *addr)
    try:
        with socket.create_connection(addr, timeout) as s:
            s.sendall(('%s\r\n' % word).encode('ascii'))
            s.shutdown(socket.SHUT_WR)
            data = []
            while 1:
                chunk = s.recv(8192)
                if not chunk:
                    break
                data.append(chunk)
    except socket.timeout:
        raise FailedConnect("%s:%s: timed out" % addr)
    except socket.error as err:
        raise FailedConnect("%s:%s: %s" % (addr[0], addr[1], err))

    response = b''.join(data).decode('utf-8', 'replace')
    logger.debug('Got %s bytes from %s:%s for %r',
                 len(response), addr[0], addr[1], word)
    return response
