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
from zope.testing import setupstack
import doctest
import io
import unittest
import manuel.capture
import manuel.doctest
import manuel.testing
import mock
import re
import socket
import zc.thread
import zc.zkthreshold
import zc.zkthreshold.fourletter
import zc.zkthreshold.nagios
import zope.testing.loggingsupport
import zope.testing.renormalizing

from zc.zkthreshold.nagios import (
    Config, Result, OK, WARNING, CRITICAL, UNKNOWN)

srvr = """\
Zookeeper version: 3.4.6-1569965, built on 02/20/2014 09:09 GMT
Latency min/avg/max: 0/0/0
Received: 3
Sent: 2
Connections: 1
Outstanding: 0
Zxid: 0x100000000
Mode: leader
Node count: 4
"""

mntr = """\
zk_version\t3.4.6-1569965, built on 02/20/2014 09:09 GMT
zk_avg_latency\t75
zk_max_latency\t310
zk_min_latency\t0
zk_packets_received\t70
zk_packets_sent\t69
zk_num_alive_connections\t1
zk_outstanding_requests\t0
zk_server_state\tleader
zk_znode_count\t4
zk_watch_count\t0
zk_ephemerals_count\t0
zk_approximate_data_size\t27
zk_followers\t4
zk_synced_followers\t3
zk_pending_syncs\t0
zk_open_file_descriptor_count\t23
zk_max_file_descriptor_count\t1024
"""

class FakeZooKeeper:
    """Answer four-letter words with canned responses

    Commands received are recorded in ``commands``.  A command without a
    canned response gets an empty response, as real servers give for
    unknown commands.
    """

    def __init__(self, responses=None):
        if responses is None:
            responses = dict(srvr=srvr, mntr=mntr)
        self.responses = responses
        self.commands = []
        self.closed = False
        self.listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.listener.bind(('127.0.0.1', 0))
        self.listener.listen(5)
        self.listener.settimeout(.1)
        self.port = self.listener.getsockname()[1]

        @zc.thread.Thread
        def thread():
            while not self.closed:
                try:
                    conn, _ = self.listener.accept()
                except socket.timeout:
                    continue
                except socket.error:
                    break
                with conn:
                    conn.settimeout(5)
                    self.handle(conn)

        self.thread = thread

    def handle(self, conn):
        data = b''
        while 1:
            chunk = conn.recv(1024)
            if not chunk:
                break
            data += chunk
        command = data.decode('ascii').strip()
        self.commands.append(command)
        conn.sendall(self.responses.get(command, '').encode('ascii'))

    def close(self):
        if not self.closed:
            self.closed = True
            self.thread.join(5)
            self.listener.close()

def start_server(test, responses=None):
    server = FakeZooKeeper(responses)
    setupstack.register(test, server.close)
    return server


class FourLetterTests(unittest.TestCase):

    def setUp(self):
        self.server = start_server(self)

    def tearDown(self):
        setupstack.tearDown(self)

    def test_command_returns_whole_response(self):
        self.assertEqual(
            zc.zkthreshold.fourletter.command(
                '127.0.0.1', self.server.port, 'mntr'),
            mntr)
        self.assertEqual(self.server.commands, ['mntr'])

    def test_command_sends_crlf_terminated_word(self):
        received = []
        self.server.handle = lambda conn: received.append(conn.recv(1024))
        zc.zkthreshold.fourletter.command(
            '127.0.0.1', self.server.port, 'ruok', 5)
        self.assertEqual(received, [b'ruok\r\n'])

    def test_port_may_be_a_string(self):
        self.assertEqual(
            zc.zkthreshold.fourletter.command(
                '127.0.0.1', str(self.server.port), 'srvr'),
            srvr)

    def test_unknown_command_gets_empty_response(self):
        self.assertEqual(
            zc.zkthreshold.fourletter.command(
                '127.0.0.1', self.server.port, 'wtf?'),
            '')

    def test_refused_connection(self):
        port = self.server.port
        self.server.close()
        with self.assertRaises(zc.zkthreshold.fourletter.FailedConnect) as c:
            zc.zkthreshold.fourletter.command('127.0.0.1', port, 'mntr')
        self.assertTrue(str(c.exception).startswith('127.0.0.1:%s: ' % port))
        self.assertIsInstance(c.exception, ConnectionError)

    def test_unresponsive_server_times_out(self):
        # Connections complete in the backlog, but nobody ever answers.
        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        setupstack.register(self, listener.close)
        listener.bind(('127.0.0.1', 0))
        listener.listen(1)
        port = listener.getsockname()[1]
        with self.assertRaises(zc.zkthreshold.fourletter.FailedConnect) as c:
            zc.zkthreshold.fourletter.command('127.0.0.1', port, 'mntr', .2)
        self.assertEqual(str(c.exception), '127.0.0.1:%s: timed out' % port)

    def test_socket_errors_while_reading(self):
        with mock.patch('socket.create_connection') as create_connection:
            sock = create_connection.return_value.__enter__.return_value
            sock.recv.side_effect = ConnectionResetError(
                104, 'Connection reset by peer')
            with self.assertRaises(zc.zkthreshold.fourletter.FailedConnect):
                zc.zkthreshold.fourletter.command('zk.example.com', 2181,
                                                  'mntr', 1)
        create_connection.assert_called_once_with(('zk.example.com', 2181), 1)
        sock.sendall.assert_called_once_with(b'mntr\r\n')
        sock.shutdown.assert_called_once_with(socket.SHUT_WR)

class CheckTests(unittest.TestCase):
    """Checks against canned responses, without any network
    """

    def setUp(self):
        self.command = setupstack.context_manager(
            self, mock.patch('zc.zkthreshold.fourletter.command'))
        self.command.side_effect = lambda host, port, word, timeout: (
            dict(srvr=srvr, mntr=mntr).get(word, ''))

    def tearDown(self):
        setupstack.tearDown(self)

    def check(self, **kw):
        return zc.zkthreshold.nagios.check(Config(**kw))

    def test_synced_followers_below_mincrit(self):
        self.command.side_effect = lambda host, port, word, timeout: (
            srvr if word == 'srvr' else 'zk_synced_followers\t1\n')
        self.assertEqual(
            self.check(metric='zk_synced_followers', leader_only=True,
                       mincrit=2.0),
            (CRITICAL, 'zk_synced_followers 1 less than 2.0'))

    def test_synced_followers_ok(self):
        self.assertEqual(
            self.check(metric='zk_synced_followers', leader_only=True,
                       mincrit=2.0),
            (OK, 'zk_synced_followers: 3.0'))
        self.assertEqual(
            [c[0][2] for c in self.command.call_args_list], ['srvr', 'mntr'])

    def test_latency_over_maxwarn(self):
        self.assertEqual(
            self.check(metric='zk_avg_latency', maxwarn=50.0, maxcrit=100.0),
            (WARNING, 'zk_avg_latency 75 exceeds 50.0'))

    def test_threshold_messages(self):
        for kw, expected in [
            (dict(mincrit=100.0), (CRITICAL, 'zk_avg_latency 75 less than 100.0')),
            (dict(maxcrit=74.5), (CRITICAL, 'zk_avg_latency 75 exceeds 74.5')),
            (dict(minwarn=76.0), (WARNING, 'zk_avg_latency 75 less than 76.0')),
            (dict(maxwarn=0.0), (WARNING, 'zk_avg_latency 75 exceeds 0.0')),
            ]:
            self.assertEqual(self.check(metric='zk_avg_latency', **kw),
                             expected, kw)

    def test_bounds_are_exclusive(self):
        self.assertEqual(
            self.check(metric='zk_avg_latency',
                       mincrit=75.0, maxcrit=75.0, minwarn=75.0, maxwarn=75.0),
            (OK, 'zk_avg_latency: 75.0'))

    def test_critical_takes_precedence_over_warning(self):
        self.assertEqual(
            self.check(metric='zk_avg_latency', maxwarn=10.0, maxcrit=50.0),
            (CRITICAL, 'zk_avg_latency 75 exceeds 50.0'))
        self.assertEqual(
            self.check(metric='zk_avg_latency', minwarn=90.0, maxcrit=50.0),
            (CRITICAL, 'zk_avg_latency 75 exceeds 50.0'))
        self.assertEqual(
            self.check(metric='zk_avg_latency', maxwarn=10.0, mincrit=100.0),
            (CRITICAL, 'zk_avg_latency 75 less than 100.0'))

    def test_min_checked_before_max(self):
        self.assertEqual(
            self.check(metric='zk_avg_latency', mincrit=100.0, maxcrit=50.0),
            (CRITICAL, 'zk_avg_latency 75 less than 100.0'))

    def test_classification(self):
        thresholds = dict(mincrit=10.0, minwarn=20.0, maxwarn=80.0,
                          maxcrit=90.0)
        for value in range(0, 101, 5):
            self.command.side_effect = lambda host, port, word, timeout: (
                'zk_watch_count\t%s\n' % value)
            status = self.check(metric='zk_watch_count', **thresholds).status
            if value < 10 or value > 90:
                expected = CRITICAL
            elif value < 20 or value > 80:
                expected = WARNING
            else:
                expected = OK
            self.assertEqual(status, expected, value)

    def test_no_thresholds(self):
        self.assertEqual(self.check(metric='zk_znode_count'),
                         (OK, 'zk_znode_count: 4.0'))

    def test_missing_metric_is_unknown_whatever_the_thresholds(self):
        message = ('zk_nonesuch not found. If the metric is only present'
                   ' on leaders, run with --leader_only')
        for kw in ({}, dict(mincrit=1.0), dict(maxcrit=1.0, maxwarn=0.0)):
            self.assertEqual(self.check(metric='zk_nonesuch', **kw),
                             (UNKNOWN, message))

    def test_non_integer_values_are_not_found(self):
        self.command.side_effect = lambda host, port, word, timeout: (
            'zk_avg_latency\t0.5\nzk_max_latency\t-1\n')
        self.assertEqual(self.check(metric='zk_avg_latency').status, UNKNOWN)
        self.assertEqual(self.check(metric='zk_max_latency').status, UNKNOWN)

    def test_metric_must_match_whole_name(self):
        self.assertEqual(self.check(metric='zk_followers'),
                         (OK, 'zk_followers: 4.0'))
        self.assertEqual(self.check(metric='zk_max').status, UNKNOWN)

    def test_follower_with_leader_only(self):
        self.command.side_effect = lambda host, port, word, timeout: (
            srvr.replace('leader', 'follower'))
        self.assertEqual(
            self.check(metric='zk_synced_followers', leader_only=True,
                       mincrit=2.0),
            (OK, 'Check run on a follower, but run as leader_only'))
        self.command.assert_called_once_with('localhost', 2181, 'srvr', 10.0)

    def test_standalone_with_leader_only(self):
        self.command.side_effect = lambda host, port, word, timeout: (
            srvr.replace('leader', 'standalone'))
        self.assertEqual(
            self.check(metric='zk_followers', leader_only=True).status, OK)
        self.assertEqual(self.command.call_count, 1)

    def test_leader_only_needs_exact_mode_line(self):
        self.command.side_effect = lambda host, port, word, timeout: (
            srvr.replace('Mode: leader', 'Mode: leaderless')
            if word == 'srvr' else mntr)
        self.assertEqual(
            self.check(metric='zk_followers', leader_only=True),
            (OK, 'Check run on a follower, but run as leader_only'))

    def test_config_is_passed_to_the_server(self):
        self.check(host='zk.example.com', port=2182, zk_command='stat',
                   metric='Node count:', timeout=3.0, leader_only=True)
        self.assertEqual(
            self.command.call_args_list,
            [mock.call('zk.example.com', 2182, 'srvr', 3.0),
             mock.call('zk.example.com', 2182, 'stat', 3.0)])

    def test_no_metric(self):
        self.assertEqual(self.check(),
                         (UNKNOWN, 'No metric specified, use --metric'))
        self.assertFalse(self.command.called)

    def test_non_ascii_command(self):
        self.assertEqual(
            self.check(metric='zk_followers', zk_command='mntr\xe9'),
            (UNKNOWN, "Invalid ZooKeeper command 'mntr\xe9'"))
        self.assertFalse(self.command.called)

    def test_connection_failures_are_unknown(self):
        self.command.side_effect = zc.zkthreshold.fourletter.FailedConnect(
            'zk.example.com:2181: timed out')
        for leader_only in (False, True):
            self.assertEqual(
                self.check(metric='zk_followers', leader_only=leader_only),
                (UNKNOWN, "Can't connect zk.example.com:2181: timed out"))

    def test_connection_failure_after_leader_probe(self):
        def command(host, port, word, timeout):
            if word == 'srvr':
                return srvr
            raise zc.zkthreshold.fourletter.FailedConnect(
                'localhost:2181: [Errno 104] Connection reset by peer')
        self.command.side_effect = command
        self.assertEqual(
            self.check(metric='zk_followers', leader_only=True).status,
            UNKNOWN)

    def test_connection_failures_are_logged(self):
        handler = zope.testing.loggingsupport.InstalledHandler(
            'zc.zkthreshold')
        setupstack.register(self, handler.uninstall)
        self.command.side_effect = zc.zkthreshold.fourletter.FailedConnect(
            'localhost:2181: timed out')
        self.check(metric='zk_followers')
        self.assertEqual(
            [(r.levelname, r.getMessage()) for r in handler.records],
            [('WARNING', "Can't connect localhost:2181: timed out")])

    def test_other_errors_propagate(self):
        self.command.side_effect = ValueError('boom')
        with self.assertRaises(ValueError):
            self.check(metric='zk_followers')

    def test_package_level_check(self):
        self.assertEqual(
            zc.zkthreshold.check(metric='zk_avg_latency', maxcrit=100.0),
            Result(OK, 'zk_avg_latency: 75.0'))

class MainTests(unittest.TestCase):

    def setUp(self):
        self.server = start_server(self)
        self.stdout = setupstack.context_manager(
            self, mock.patch('sys.stdout', new_callable=io.StringIO))

    def tearDown(self):
        setupstack.tearDown(self)

    def main(self, *args):
        return zc.zkthreshold.nagios.main(
            ['--host', '127.0.0.1', '--port', str(self.server.port)]
            + list(args))

    def test_exit_codes(self):
        self.assertEqual(self.main('--metric', 'zk_avg_latency'), 0)
        self.assertEqual(
            self.main('--metric', 'zk_avg_latency', '--maxwarn', '50'), 1)
        self.assertEqual(
            self.main('--metric', 'zk_avg_latency', '--maxcrit', '50'), 2)
        self.assertEqual(self.main('--metric', 'zk_nonesuch'), 3)

    def test_one_line_of_output(self):
        self.main('--metric', 'zk_synced_followers', '--leader_only',
                  '--mincrit', '4')
        self.assertEqual(
            self.stdout.getvalue(),
            'ZookeeperThreshold CRITICAL: zk_synced_followers 3 less than 4.0\n')

    def test_leader_only_follower_skips_metric_probe(self):
        self.server.responses['srvr'] = srvr.replace('leader', 'follower')
        self.assertEqual(
            self.main('--metric', 'zk_synced_followers', '--leader_only',
                      '--mincrit', '2'),
            0)
        self.assertEqual(self.server.commands, ['srvr'])

    def test_zk_command(self):
        self.assertEqual(
            self.main('--zk_command', 'srvr', '--metric', 'Received:'), 0)
        self.assertEqual(self.server.commands, ['srvr'])
        self.assertEqual(self.stdout.getvalue(),
                         'ZookeeperThreshold OK: Received:: 3.0\n')

    def test_no_metric(self):
        self.assertEqual(self.main(), 3)
        self.assertEqual(self.server.commands, [])

    def test_non_ascii_command_is_unknown(self):
        self.assertEqual(
            self.main('--zk_command', 'st\xe4t', '--metric', 'zk_followers'),
            3)
        self.assertTrue(self.stdout.getvalue().startswith(
            'ZookeeperThreshold UNKNOWN: Invalid ZooKeeper command '))
        self.assertEqual(self.server.commands, [])

    def test_invalid_metric_pattern(self):
        self.assertEqual(self.main('--metric', 'zk_(avg'), 3)
        self.assertTrue(self.stdout.getvalue().startswith(
            'ZookeeperThreshold UNKNOWN: Invalid metric pattern zk_(avg: '))

    def test_bad_threshold_is_a_usage_error(self):
        with mock.patch('sys.stderr', new_callable=io.StringIO):
            with self.assertRaises(SystemExit):
                self.main('--metric', 'zk_avg_latency', '--maxwarn', 'lots')

    def test_unresponsive_server(self):
        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        setupstack.register(self, listener.close)
        listener.bind(('127.0.0.1', 0))
        listener.listen(1)
        status = zc.zkthreshold.nagios.main(
            ['--host', '127.0.0.1', '--port', str(listener.getsockname()[1]),
             '--metric', 'zk_avg_latency', '--timeout', '.2'])
        self.assertEqual(status, 3)
        self.assertIn('timed out', self.stdout.getvalue())

    def test_verbose_logging(self):
        with mock.patch('logging.basicConfig') as basicConfig:
            self.main('--metric', 'zk_avg_latency')
            self.assertFalse(basicConfig.called)
            self.main('--metric', 'zk_avg_latency', '-v')
            basicConfig.assert_called_once_with(level=10)


def defaults():
    """Options not given on the command line get these values:

    >>> Config() # doctest: +NORMALIZE_WHITESPACE
    Config(host='localhost', port=2181, leader_only=False,
           zk_command='mntr', metric=None, minwarn=None, maxwarn=None,
           mincrit=None, maxcrit=None, timeout=10.0)
    """

def leader_probe_is_logged():
    """
    >>> handler = zope.testing.loggingsupport.InstalledHandler(
    ...     'zc.zkthreshold')
    >>> server.responses['srvr'] = srvr.replace('leader', 'follower')
    >>> zc.zkthreshold.check(host='127.0.0.1', port=server.port,
    ...                      metric='zk_followers', leader_only=True)
    Result(status=0, message='Check run on a follower, but run as leader_only')

    >>> print(handler) # doctest: +ELLIPSIS
    zc.zkthreshold DEBUG
      Sending 'srvr' to 127.0.0.1:PORT
    zc.zkthreshold DEBUG
      Got ... bytes from 127.0.0.1:PORT for 'srvr'
    zc.zkthreshold INFO
      127.0.0.1:PORT is not the leader, skipping zk_followers

    >>> handler.uninstall()
    """

def setUp(test):
    test.globs['server'] = start_server(test)

def tearDown(test):
    setupstack.tearDown(test)

def doc_suite():
    checker = zope.testing.renormalizing.RENormalizing([
        (re.compile(r'127.0.0.1:\d+'), '127.0.0.1:PORT'),
        (re.compile(r'localhost:\d+'), 'localhost:PORT'),
        ])
    return unittest.TestSuite((
        doctest.DocTestSuite(
            setUp=setUp, tearDown=tearDown, checker=checker),
        manuel.testing.TestSuite(
            manuel.doctest.Manuel(
                checker=checker, optionflags=doctest.ELLIPSIS)
            + manuel.capture.Manuel(),
            'README.txt',
            setUp=setUp, tearDown=tearDown,
            ),
        ))

class DocumentationTests(unittest.TestCase):
    """README.txt and the docstring examples above

    Run from a TestCase so that collectors that only find TestCases,
    like pytest, run them too.
    """

    def test_examples(self):
        result = unittest.TestResult()
        doc_suite().run(result)
        # defaults, leader_probe_is_logged and README.txt
        self.assertEqual(result.testsRun, 3)
        problems = result.failures + result.errors
        self.assertFalse(
            problems, '\n'.join(traceback for _, traceback in problems))
