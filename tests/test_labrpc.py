import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

import pytest

from distlab.labrpc import Network, RPCFailed, Server, Service


@dataclass
class JunkArgs:
    x: int = 0


@dataclass
class JunkReply:
    x: str = ""


class JunkServer:
    def __init__(self):
        self._lock = threading.Lock()
        self.log1 = []
        self.log2 = []
        self.release = threading.Event()

    def handler1(self, args):
        with self._lock:
            self.log1.append(args)
            return int(args)

    def handler2(self, args):
        with self._lock:
            self.log2.append(args)
            return "handler2-" + str(args)

    def handler3(self, args):
        with self._lock:
            self.release.wait(20)
            return -args

    def handler4(self, args):
        return JunkReply(x="pointer")

    def handler5(self, args):
        return JunkReply(x=f"got {args.x}")

    def handler6(self, args):
        with self._lock:
            return len(args)

    def handler7(self, args):
        with self._lock:
            return "y" * args

    def two_args(self, a, b):
        return a + b


@pytest.fixture
def net():
    with Network() as network:
        yield network


def _serve(network, servername):
    junk = JunkServer()
    server = Server()
    server.add_service(Service(junk))
    network.add_server(servername, server)
    return junk


def _connected_end(network, endname, servername):
    end = network.make_end(endname)
    network.connect(endname, servername)
    network.enable(endname, True)
    return end


def test_basic(net):
    _serve(net, "server99")
    end = _connected_end(net, "end1-99", "server99")
    assert end.call("JunkServer.handler2", 111) == "handler2-111"
    assert end.call("JunkServer.handler1", "9099") == 9099


def test_types(net):
    _serve(net, "server99")
    end = _connected_end(net, "end1-99", "server99")
    assert end.call("JunkServer.handler4", JunkArgs()) == JunkReply(x="pointer")
    assert end.call("JunkServer.handler5", JunkArgs(x=7)) == JunkReply(x="got 7")


def test_disconnect(net):
    junk = _serve(net, "server99")
    end = net.make_end("end1-99")
    net.connect("end1-99", "server99")
    with pytest.raises(RPCFailed):
        end.call("JunkServer.handler2", 111)
    assert junk.log2 == []
    net.enable("end1-99", True)
    assert end.call("JunkServer.handler1", "9099") == 9099


def test_counts(net):
    _serve(net, 99)
    end = _connected_end(net, "end1-99", 99)
    for i in range(17):
        assert end.call("JunkServer.handler2", i) == f"handler2-{i}"
    assert net.get_count(99) == 17
    assert net.get_total_count() == 17


def test_bytes(net):
    _serve(net, 99)
    end = _connected_end(net, "end1-99", 99)
    for _ in range(17):
        args = "x" * 73
        args = args + args
        args = args + args
        assert end.call("JunkServer.handler6", args) == len(args)
    n = net.get_total_bytes()
    assert 4828 <= n <= 6000

    for _ in range(17):
        assert len(end.call("JunkServer.handler7", 107)) == 107
    nn = net.get_total_bytes() - n
    assert 1800 <= nn <= 2500


def test_concurrent_many(net):
    _serve(net, 1000)
    nclients, nrpcs = 20, 10

    def client(i):
        end = net.make_end(i)
        net.connect(i, 1000)
        net.enable(i, True)
        done = 0
        for j in range(nrpcs):
            arg = i * 100 + j
            if end.call("JunkServer.handler2", arg) == f"handler2-{arg}":
                done += 1
        return done

    with ThreadPoolExecutor(max_workers=nclients) as pool:
        total = sum(pool.map(client, range(nclients)))
    assert total == nclients * nrpcs
    assert net.get_count(1000) == total


def test_unreliable(net):
    net.reliable(False)
    _serve(net, 1000)
    nclients = 300

    def client(i):
        end = net.make_end(i)
        net.connect(i, 1000)
        net.enable(i, True)
        try:
            return i, end.call("JunkServer.handler2", i * 100)
        except RPCFailed:
            return i, None

    with ThreadPoolExecutor(max_workers=50) as pool:
        outcomes = list(pool.map(client, range(nclients)))
    succeeded = [(i, reply) for i, reply in outcomes if reply is not None]
    assert [reply for _, reply in succeeded] == [f"handler2-{i * 100}" for i, _ in succeeded]
    assert 0 < len(succeeded) < nclients


def test_concurrent_one(net):
    junk = _serve(net, 1000)
    end = _connected_end(net, "c", 1000)
    nrpcs = 20

    def one(i):
        arg = 100 + i
        return end.call("JunkServer.handler2", arg) == f"handler2-{arg}"

    with ThreadPoolExecutor(max_workers=nrpcs) as pool:
        total = sum(pool.map(one, range(nrpcs)))
    assert total == nrpcs
    assert len(junk.log2) == nrpcs
    assert net.get_count(1000) == total


def test_regression_delayed_calls_do_not_block_later_ones(net):
    junk = _serve(net, 1000)
    end = net.make_end("c")
    net.connect("c", 1000)
    net.enable("c", False)
    nrpcs = 20

    def delayed(i):
        try:
            end.call("JunkServer.handler2", 100 + i)
        except RPCFailed:
            return False
        return True

    with ThreadPoolExecutor(max_workers=nrpcs) as pool:
        futures = [pool.submit(delayed, i) for i in range(nrpcs)]
        time.sleep(0.1)
        t0 = time.monotonic()
        net.enable("c", True)
        assert end.call("JunkServer.handler2", 99) == "handler2-99"
        duration = time.monotonic() - t0
        results = [f.result() for f in futures]

    assert duration < 0.05
    assert not any(results)
    assert junk.log2 == [99]
    assert net.get_count(1000) == 1


def test_killed(net):
    junk = _serve(net, "server99")
    end = _connected_end(net, "end1-99", "server99")
    with ThreadPoolExecutor(max_workers=1) as pool:
        future = pool.submit(end.call, "JunkServer.handler3", 99)
        time.sleep(0.3)
        assert not future.done()
        net.delete_server("server99")
        with pytest.raises(RPCFailed):
            future.result(timeout=1.0)
        junk.release.set()


def test_many_sequential_calls(net):
    _serve(net, "server99")
    end = _connected_end(net, "end1-99", "server99")
    replies = {end.call("JunkServer.handler2", 111) for _ in range(500)}
    assert replies == {"handler2-111"}


def test_unknown_method_raises(net):
    _serve(net, "s")
    end = _connected_end(net, "e", "s")
    with pytest.raises(LookupError):
        end.call("JunkServer.nothing", 1)


def test_unknown_service_raises(net):
    _serve(net, "s")
    end = _connected_end(net, "e", "s")
    with pytest.raises(LookupError):
        end.call("Other.handler2", 1)


def test_service_skips_methods_with_wrong_signature():
    service = Service(JunkServer())
    assert service.name == "JunkServer"
    assert "two_args" not in service.methods
    assert "handler2" in service.methods
    assert "log1" not in service.methods


def test_cleanup_makes_calls_fail():
    network = Network()
    _serve(network, "s")
    end = _connected_end(network, "e", "s")
    assert end.call("JunkServer.handler2", 1) == "handler2-1"
    network.cleanup()
    with pytest.raises(RPCFailed):
        end.call("JunkServer.handler2", 2)
    assert network.get_total_count() == 1


def test_duplicate_end_rejected(net):
    net.make_end("e")
    with pytest.raises(ValueError):
        net.make_end("e")


def test_get_count_of_deleted_server_raises(net):
    _serve(net, "s")
    net.delete_server("s")
    with pytest.raises(KeyError):
        net.get_count("s")


def test_unconnected_end_fails_but_is_counted(net):
    _serve(net, "s")
    end = net.make_end("e")
    net.enable("e", True)
    with pytest.raises(RPCFailed):
        end.call("JunkServer.handler2", 5)
    assert net.get_total_count() == 1
    assert net.get_count("s") == 0