"""
Canal de datos en modo activo: el servidor se conecta a la dirección
anunciada por el cliente con PORT y mueve bytes entre el socket y el disco.
"""
import socket
import logging

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024
LBRK = "\r\n"


class TransferAborted(Exception):
    """El extremo remoto cerró la conexión de datos a mitad de transferencia."""


def parse_port_argument(arg):
    """
    'h1,h2,h3,h4,p1,p2' -> (host, port). Lanza ValueError si el formato no es válido.
    """
    parts = [p.strip() for p in arg.split(',')]
    if len(parts) != 6:
        raise ValueError(f"expected 6 fields, got {len(parts)}")
    nums = [int(p) for p in parts]
    if any(n < 0 or n > 255 for n in nums):
        raise ValueError("field out of range")
    host = '.'.join(str(n) for n in nums[:4])
    port = nums[4] * 256 + nums[5]
    if port == 0:
        raise ValueError("port 0")
    return host, port


def open_data_socket(host, port, timeout=None):
    dsock = socket.create_connection((host, port), timeout=timeout)
    dsock.settimeout(timeout)
    return dsock


def close_data_socket(session):
    """Cierra el socket de datos de la sesión, si hay uno."""
    dsock, session.data_socket = session.data_socket, None
    if dsock is None:
        return
    try:
        dsock.shutdown(socket.SHUT_RDWR)
    except OSError:
        pass
    dsock.close()


def send_data(session, lines):
    """
    Envía un iterable de bytes/str por el socket de datos y devuelve los bytes enviados.
    El socket de datos se cierra siempre al terminar.
    """
    sent = 0
    try:
        for chunk in lines:
            if isinstance(chunk, str):
                chunk = chunk.encode('utf-8', errors='replace')
            session.data_socket.sendall(chunk)
            sent += len(chunk)
    except (BrokenPipeError, ConnectionResetError) as e:
        logger.debug(f"[DATA] {session.remote_addr} - {session.username} abortó la transferencia ({e})")
        raise TransferAborted(str(e))
    finally:
        close_data_socket(session)
    logger.debug(f"[DATA] {session.remote_addr} - {session.username} recibió {sent} bytes")
    return sent


def receive_data(session, fileobj):
    """
    Copia el contenido del socket de datos en `fileobj` hasta que el cliente
    cierra la conexión. Devuelve el número de bytes recibidos.
    """
    received = 0
    try:
        while True:
            chunk = session.data_socket.recv(CHUNK_SIZE)
            if not chunk:
                break
            fileobj.write(chunk)
            received += len(chunk)
    except ConnectionResetError as e:
        logger.debug(f"[DATA] {session.remote_addr} - subida interrumpida ({e})")
        raise TransferAborted(str(e))
    finally:
        close_data_socket(session)
    logger.debug(f"[DATA] {session.remote_addr} - {session.username} envió {received} bytes")
    return received


def read_chunks(fileobj):
    """Lee un fichero en bloques de CHUNK_SIZE bytes."""
    return iter(lambda: fileobj.read(CHUNK_SIZE), b'')


def text_lines(lines):
    for line in lines:
        yield line + LBRK
