import os
import logging

from ftpd.config import PROGRAM, VERSION, AUTHOR_EMAIL
from ftpd.paths import resolve_path, list_long, list_names
from ftpd.transfer import (TransferAborted, parse_port_argument, open_data_socket,
                           close_data_socket, send_data, receive_data, read_chunks,
                           text_lines)

logger = logging.getLogger(__name__)

ANONYMOUS = "anonymous"

MAX_MODE = 0o777  # sin setuid, setgid ni sticky

SYNTAX_ERROR = "501 Syntax error in parameters or arguments."
NO_DATA_CONNECTION = "425 Use PORT first."


def _path_arg(arg):
    """Los nombres con espacios llegan troceados: se vuelven a unir."""
    if isinstance(arg, list):
        return ' '.join(arg) if arg else None
    return arg


def _debug(session, msg):
    logger.debug(f"[CMD] {session.remote_addr} - {msg}")


def _abort(session):
    """La transferencia se cortó: se trata igual que un QUIT."""
    QUIT(session, None)
    return "426 Connection closed; transfer aborted."


# --- COMANDOS BASICOS ---

def USER(session, arg):
    if arg != ANONYMOUS:
        return "502 Only anonymous user implemented"
    if session.username is not None:
        return "503 Already logged in"
    session.username = arg
    _debug(session, f"User {arg} logged in.")
    return "230 OK, password not required"


def TYPE(session, arg):
    if isinstance(arg, list):
        arg = arg[0]
    a = arg.upper() if arg else None
    if a == 'A':
        session.mode = 'ascii'
        return "200 Type set to ASCII"
    if a == 'I':
        # Se acepta, pero las transferencias siempre son binarias
        session.mode = 'binary'
        return "200 Type set to binary"
    return "504 Type not supported"


def MODE(session, arg):
    return "202 Stream mode only supported"


def STRU(session, arg):
    return "202 File structure only supported"


def NOOP(session, arg):
    return "200 "


def SYST(session, arg):
    return f"215 UNIX {PROGRAM} v{VERSION}"


def QUIT(session, arg):
    session.end()
    _debug(session, "User disconnected.")
    return "221 Goodbye."


def HELP(session, arg):
    session.reply("214-The following commands are recognized.")
    verbs = sorted(COMMANDS)
    for i in range(0, len(verbs), 3):
        session.reply("  " + "\t\t".join(v.upper() for v in verbs[i:i + 3]))
    return f"214 Send comments to {AUTHOR_EMAIL}"


# --- NAVEGACION ---

def PWD(session, arg):
    return f'257 "{session.current_dir}" is the current directory'


def CWD(session, arg):
    arg = _path_arg(arg)
    if not arg:
        return SYNTAX_ERROR
    target = resolve_path(session, arg)
    if not os.path.isdir(target):
        return "550 Directory not found"
    if not os.access(target, os.X_OK):
        raise PermissionError(target)
    session.current_dir = target
    return f"250 Directory changed to {target}"


def CDUP(session, arg):
    return CWD(session, "..")


# --- SISTEMA DE FICHEROS ---

def MKD(session, arg):
    name = _path_arg(arg)
    if not name:
        return SYNTAX_ERROR
    target = resolve_path(session, name)
    if os.path.exists(target):
        return f'521 "{name}" already exists'
    os.mkdir(target)
    _debug(session, f"{session.username} created directory {target}")
    return f'257 "{name}" created'


def RMD(session, arg):
    name = _path_arg(arg)
    if not name:
        return SYNTAX_ERROR
    target = resolve_path(session, name)
    if os.path.isdir(target):
        os.rmdir(target)
    elif os.path.isfile(target):
        os.remove(target)
    _debug(session, f"{session.username} deleted {target}")
    return f"200 OK, deleted {name}"


def DELE(session, arg):
    return RMD(session, arg)


def SIZE(session, arg):
    name = _path_arg(arg)
    if not name:
        return SYNTAX_ERROR
    target = resolve_path(session, name)
    if os.path.exists(target) and not os.path.isfile(target):
        return f"550 {name}: not a regular file"
    return f"213 {os.path.getsize(target)}"


def SITE(session, arg):
    args = arg if isinstance(arg, list) else [arg] if arg else []
    if not args or args[0].lower() != 'chmod':
        return "502 Command not implemented"
    if len(args) < 3:
        return SYNTAX_ERROR
    mode, name = args[1], ' '.join(args[2:])
    try:
        bits = int(mode, 8)
    except ValueError:
        return SYNTAX_ERROR
    if not 0 <= bits <= MAX_MODE:
        return SYNTAX_ERROR
    os.chmod(resolve_path(session, name), bits)
    return f"200 CHMOD of {name} to {mode} successful"


# --- CONEXION DE DATOS ---

def PORT(session, arg):
    if not isinstance(arg, str):
        return SYNTAX_ERROR
    try:
        host, port = parse_port_argument(arg)
    except ValueError:
        return SYNTAX_ERROR
    close_data_socket(session)
    try:
        session.data_socket = open_data_socket(host, port, session.config.timeout)
    except OSError as e:
        _debug(session, f"No se pudo conectar a {host}:{port}: {e}")
        return "425 Can't open data connection."
    _debug(session, f"Opened active connection at {host}:{port}")
    return f"200 Active connection established ({port})"


def PASV(session, arg):
    return "502 PASV not implemented"


def RETR(session, arg):
    name = _path_arg(arg)
    if session.data_socket is None:
        return NO_DATA_CONNECTION
    if not name:
        close_data_socket(session)
        return SYNTAX_ERROR
    try:
        f = open(resolve_path(session, name), 'rb')
    except (OSError, ValueError):
        close_data_socket(session)
        raise
    with f:
        session.reply("125 Data transfer starting")
        try:
            sent = send_data(session, read_chunks(f))
        except TransferAborted:
            return _abort(session)
    return f"226 Closing data connection, sent {sent} bytes"


def STOR(session, arg):
    name = _path_arg(arg)
    if session.data_socket is None:
        return NO_DATA_CONNECTION
    if not name:
        close_data_socket(session)
        return SYNTAX_ERROR
    target = resolve_path(session, name)
    try:
        f = open(target, 'wb')
    except (OSError, ValueError):
        close_data_socket(session)
        raise
    with f:
        session.reply("125 Data transfer starting")
        try:
            received = receive_data(session, f)
        except TransferAborted:
            return _abort(session)
    _debug(session, f"{session.username} created file {target}")
    return f"226 Closing data connection, received {received} bytes"


def _send_listing(session, arg, build):
    if session.data_socket is None:
        return NO_DATA_CONNECTION
    try:
        name = _path_arg(arg)
        target = resolve_path(session, name) if name else session.current_dir
        lines = build(target)
    except (OSError, ValueError):
        close_data_socket(session)
        raise
    session.reply("125 Opening ASCII mode data connection for file list")
    try:
        send_data(session, text_lines(lines))
    except TransferAborted:
        return _abort(session)
    return "226 Transfer complete"


def LIST(session, arg):
    # Opciones tipo `-la` que envían algunos clientes
    if isinstance(arg, str) and arg.startswith('-'):
        arg = None
    elif isinstance(arg, list) and arg and arg[0].startswith('-'):
        arg = arg[1:]
    return _send_listing(session, arg, list_long)


def NLST(session, arg):
    return _send_listing(session, arg, list_names)


def UNKNOWN(session, verb, arg):
    if session.config.debug:
        if isinstance(arg, list):
            arg = ' '.join(arg)
        return f"500 I don't understand {verb}({arg or ''})"
    return "500 Sorry, I don't understand that command"


COMMANDS = {
    'user': USER,
    'type': TYPE,
    'mode': MODE,
    'stru': STRU,
    'noop': NOOP,
    'syst': SYST,
    'quit': QUIT,
    'help': HELP,
    'pwd': PWD,
    'cwd': CWD,
    'cdup': CDUP,
    'mkd': MKD,
    'rmd': RMD,
    'dele': DELE,
    'size': SIZE,
    'site': SITE,
    'port': PORT,
    'pasv': PASV,
    'retr': RETR,
    'stor': STOR,
    'list': LIST,
    'nlst': NLST,
}


# --- PARSING Y DESPACHO ---

def parse_request(line):
    """
    Devuelve (verbo, argumento). El verbo son los cuatro primeros caracteres
    en minúsculas; el argumento es None, un str si hay un solo token o la
    lista de tokens si hay varios.
    """
    verb = line[:4].lower().strip()
    tokens = line.split()[1:]
    if not tokens:
        return verb, None
    if len(tokens) == 1:
        return verb, tokens[0]
    return verb, tokens


def handle_command_line(line, session):
    """
    Interpreta una línea de petición y devuelve la respuesta a enviar, o None
    si no hay nada que responder. Los errores del sistema de ficheros se
    traducen a respuestas 5xx; cualquier otra excepción se propaga.
    """
    if not line or not line.strip():
        return None
    verb, arg = parse_request(line)
    _debug(session, f"Request: {verb}({arg}) (sessions: {session.live_count()})")
    handler = COMMANDS.get(verb)
    if handler is None:
        return UNKNOWN(session, verb, arg)
    try:
        return handler(session, arg)
    except PermissionError:
        return "553 Permission denied"
    except FileNotFoundError:
        return "553 File doesn't exist"
    except OSError as e:
        return f"550 {e.strerror or e}"
    except (ValueError, OverflowError):
        # p.ej. rutas con bytes nulos
        return SYNTAX_ERROR
