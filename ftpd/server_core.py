import os
import socket
import logging
import threading

import ftpd.commands as command
from ftpd.config import PROGRAM
from ftpd.logs import notice
from ftpd.transfer import LBRK, close_data_socket

logger = logging.getLogger(__name__)

MAX_LINE = 8192         # Longitud máxima de una línea de control
ACCEPT_POLL = 0.5       # Cada cuánto se revisa el estado del servidor en accept()
JOIN_TIMEOUT = 2.0      # Espera por cada hilo al apagar el servidor

LINE_TOO_LONG = "500 Command line too long"

ALIVE = 'alive'
DEAD = 'dead'


class Session: # Estado de una conexión de control
    def __init__(self, client_socket, client_addr, config, server=None):
        self.client_socket = client_socket
        self.client_addr = client_addr
        self.config = config
        self.server = server
        self.username = None
        self.mode = 'binary'
        self.data_socket = None
        self.current_dir = config.root or os.getcwd()
        self.quit = False
        self.closed = False
        self.reader = client_socket.makefile('rb')
        self._close_lock = threading.Lock()

    @property
    def remote_addr(self):
        return f"{self.client_addr[0]}:{self.client_addr[1]}"

    def live_count(self):
        return self.server.live_count() if self.server else 0

    def reply(self, msg):
        """Envía una línea de respuesta al cliente por el socket de control."""
        if msg is None or self.closed:
            return
        self.client_socket.sendall((msg + LBRK).encode('utf-8', errors='replace'))

    def readline(self):
        """
        Lee una línea de control. Devuelve b'' al cerrar el cliente y None si la
        línea superaba MAX_LINE (se descarta hasta el siguiente terminador).
        """
        data = self.reader.readline(MAX_LINE)
        if len(data) < MAX_LINE or data.endswith(b'\n'):
            return data
        while not data.endswith(b'\n'):
            data = self.reader.readline(MAX_LINE)
            if not data:
                return data
        return None

    def end(self):
        """Marca la sesión para terminar después de la respuesta en curso."""
        self.quit = True
        self.username = None
        close_data_socket(self)

    def interrupt(self):
        """Despierta al hilo de la sesión cortando sus sockets (apagado forzado)."""
        for sock in (self.data_socket, self.client_socket):
            if sock is None:
                continue
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass

    def close(self):
        with self._close_lock:
            if self.closed:
                return
            self.closed = True
        close_data_socket(self)
        try:
            self.client_socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        try:
            self.reader.close()
        finally:
            self.client_socket.close()


def _decode(data):
    try:
        return data.decode()
    except UnicodeDecodeError:
        return data.decode(errors='ignore')


def handle_client(session, greeting):
    """
    Bucle de una sesión: lee una línea, la interpreta y responde, hasta que
    el cliente cierra, envía QUIT o falla la conexión.
    """
    logger.debug(f"[CORE] {session.remote_addr} - Got connection (sessions: {session.live_count()})")
    try:
        session.client_socket.settimeout(session.config.timeout)
        session.reply(greeting)
        while not session.quit and not session.closed:
            try:
                data = session.readline()
            except (OSError, ValueError) as e:
                logger.debug(f"[CORE] {session.remote_addr} - Error de lectura: {e}")
                break
            if data is None:
                session.reply(LINE_TOO_LONG)
                continue
            if not data:
                break
            response = command.handle_command_line(_decode(data), session)
            session.reply(response)
    except OSError as e:
        logger.debug(f"[CORE] {session.remote_addr} - Conexión perdida: {e}")
    except Exception:
        # Un fallo inesperado termina solo esta sesión, no el servidor
        logger.exception(f"[ERROR][CORE] Error en la sesión {session.remote_addr}")
    finally:
        session.close()
        if session.server:
            session.server.forget(threading.current_thread())
        logger.debug(f"[CORE] {session.remote_addr} - Conexión cerrada")


class FTPServer:
    """
    Aceptor de conexiones: escucha en (host, port), limita el número de
    sesiones simultáneas y lanza un hilo por cliente aceptado.
    """

    def __init__(self, config):
        self.config = config
        self.status = DEAD
        self.sessions = {}  # hilo -> Session
        self.lock = threading.Lock()

        self.server_socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.server_socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            self.server_socket.bind((config.host, config.port))
            self.server_socket.listen(config.clients + 5)
        except OSError:
            self.server_socket.close()
            raise
        self.server_socket.settimeout(ACCEPT_POLL)
        self.address = self.server_socket.getsockname()
        self.status = ALIVE

    @property
    def greeting(self):
        host, port = self.address[:2]
        return f"220 {host}:{port} FTP server ({PROGRAM}) ready."

    def _prune(self):
        for t in [t for t in self.sessions if not t.is_alive()]:
            del self.sessions[t]

    def live_count(self):
        with self.lock:
            self._prune()
            return len(self.sessions)

    def forget(self, thread):
        with self.lock:
            self.sessions.pop(thread, None)

    def _admit(self, client_socket, address):
        with self.lock:
            self._prune()
            if len(self.sessions) < self.config.clients:
                session = Session(client_socket, address, self.config, server=self)
                t = threading.Thread(target=handle_client, args=(session, self.greeting),
                                     name=f"ftp-session-{address[0]}:{address[1]}", daemon=True)
                self.sessions[t] = session
                t.start()
                return
        logger.debug(f"[CORE] Rechazada conexión de {address[0]}:{address[1]}: demasiadas sesiones")
        try:
            client_socket.sendall(("530 Too many connections" + LBRK).encode())
        except OSError:
            pass
        finally:
            client_socket.close()

    def serve_forever(self):
        host, port = self.address[:2]
        notice(f"Server started successfully at ftp://{host}:{port} [PID: {os.getpid()}]")
        while self.status == ALIVE:
            try:
                client_socket, address = self.server_socket.accept()
                self._admit(client_socket, address)
            except socket.timeout:
                continue
            except KeyboardInterrupt:
                self.status = DEAD
            except Exception as e:
                if self.status == ALIVE:
                    self.status = DEAD
                    logger.critical(f"[CORE] {e.__class__.__name__}: {e}", exc_info=True)
        notice("Shutting server down...")
        self._close_all()

    def shutdown(self):
        """Pide al bucle de aceptación que termine. Se puede llamar desde otro hilo."""
        self.status = DEAD

    def _close_all(self):
        with self.lock:
            sessions = list(self.sessions.items())
        live = [(t, s) for t, s in sessions if t.is_alive()]
        for t, session in live:
            session.interrupt()
        for t, session in live:
            t.join(JOIN_TIMEOUT)
            session.close()
        with self.lock:
            self.sessions.clear()
        self.server_socket.close()
