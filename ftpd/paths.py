import os
import pwd
import grp
import stat
import time


def resolve_path(session, path):
    """
    Devuelve la ruta absoluta de `path` respecto al directorio actual de la sesión.
    Las rutas absolutas se usan tal cual.
    """
    if os.path.isabs(path):
        return os.path.normpath(path)
    return os.path.normpath(os.path.join(session.current_dir, path))


def _owner(uid):
    try:
        return pwd.getpwuid(uid).pw_name
    except KeyError:
        return str(uid)


def _group(gid):
    try:
        return grp.getgrgid(gid).gr_name
    except KeyError:
        return str(gid)


def _mtime(st_mtime):
    # Formato de `ls -l`: hora si es reciente, año si tiene más de seis meses
    if time.time() - st_mtime > 180 * 24 * 3600:
        return time.strftime("%b %d  %Y", time.localtime(st_mtime))
    return time.strftime("%b %d %H:%M", time.localtime(st_mtime))


def format_entry(path, name=None):
    st = os.lstat(path)
    name = name or os.path.basename(path)
    if stat.S_ISLNK(st.st_mode):
        name = f"{name} -> {os.readlink(path)}"
    return (f"{stat.filemode(st.st_mode)} {st.st_nlink:>3} "
            f"{_owner(st.st_uid):<8} {_group(st.st_gid):<8} "
            f"{st.st_size:>8} {_mtime(st.st_mtime)} {name}")


def list_long(target):
    """Líneas en formato largo (como `ls -l`) para un directorio o un fichero."""
    if not os.path.isdir(target):
        return [format_entry(target)]
    lines = []
    for name in sorted(os.listdir(target)):
        try:
            lines.append(format_entry(os.path.join(target, name), name))
        except OSError:
            # El fichero desapareció mientras se listaba
            continue
    return lines


def list_names(target):
    if not os.path.isdir(target):
        return [os.path.basename(target)]
    return sorted(os.listdir(target))
