import socket
import threading
import time

import pytest

from ftpd.config import ServerConfig
from ftpd.server_core import FTPServer, Session


class FTPClient:
    """Cliente mínimo sobre socket para hablar con el servidor en los tests."""

    def __init__(self, address, timeout=5):
        self.sock = socket.create_connection(address, timeout=timeout)
        self.reader = self.sock.makefile('rb')

    def readline(self):
        return self.reader.readline().decode().rstrip('\r\n')

    def send(self, line):
        self.sock.sendall((line + "\r\n").encode())

    def cmd(self, line):
        self.send(line)
        return self.readline()

    def is_closed(self):
        try:
            return self.reader.read() == b''
        except (ConnectionResetError, socket.timeout):
            return False

    def close(self):
        self.reader.close()
        self.sock.close()


class DataListener:
    """Socket de escucha al que el servidor se conecta tras un PORT."""

    def __init__(self):
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.sock.bind(('127.0.0.1', 0))
        self.sock.listen(1)
        self.sock.settimeout(5)

    @property
    def port_argument(self):
        port = self.sock.getsockname()[1]
        return f"127,0,0,1,{port // 256},{port % 256}"

    def accept(self):
        conn, _ = self.sock.accept()
        conn.settimeout(5)
        return conn

    def close(self):
        self.sock.close()


def read_all(conn):
    chunks = []
    while True:
        chunk = conn.recv(4096)
        if not chunk:
            break
        chunks.append(chunk)
    conn.close()
    return b''.join(chunks)


def wait_for(predicate, timeout=5.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


@pytest.fixture
def config(tmp_path):
    return ServerConfig(host='127.0.0.1', port=0, clients=3, debug=False,
                        root=str(tmp_path), timeout=5)


@pytest.fixture
def session_pair(config):
    """Sesión conectada a un socketpair: (session, extremo del cliente)."""
    server_end, client_end = socket.socketpair()
    client_end.settimeout(5)
    session = Session(server_end, ('127.0.0.1', 40000), config)
    yield session, client_end
    session.close()
    client_end.close()


@pytest.fixture
def session(session_pair):
    return session_pair[0]


@pytest.fixture
def server(config):
    srv = FTPServer(config)
    t = threading.Thread(target=srv.serve_forever, daemon=True)
    t.start()
    yield srv
    srv.shutdown()
    t.join(10)


@pytest.fixture
def client_factory(server):
    clients = []

    def connect():
        c = FTPClient(server.address)
        clients.append(c)
        return c

    yield connect
    for c in clients:
        c.close()


@pytest.fixture
def data_listener():
    listener = DataListener()
    yield listener
    listener.close()
