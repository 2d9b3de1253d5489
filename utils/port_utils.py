# utils/port_utils.py
"""Диагностика занятого порта перед запуском сервера"""

import socket
import logging
from typing import NamedTuple, Optional, Tuple

import psutil

logger = logging.getLogger(__name__)

WILDCARD_HOSTS = ('0.0.0.0', '::', '')


class PortOwner(NamedTuple):
    pid: int
    name: str
    username: Optional[str] = None


def is_port_in_use(port: int, host: str = '127.0.0.1') -> bool:
    """Пробует занять порт; неудача означает, что его уже слушают"""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.settimeout(1)
        try:
            s.bind((host, port))
        except OSError:
            return True
    return False


def _matches_host(laddr_ip: str, host: str) -> bool:
    return host in WILDCARD_HOSTS or laddr_ip in WILDCARD_HOSTS or laddr_ip == host


def get_process_using_port(port: int, host: str = '0.0.0.0') -> Optional[PortOwner]:
    """
    Находит процесс, слушающий порт

    Args:
        port: Номер порта
        host: Адрес прослушивания (0.0.0.0 - любой)

    Returns:
        PortOwner или None, если процесс не найден или нет прав
    """
    try:
        connections = psutil.net_connections(kind='inet')
    except (psutil.AccessDenied, OSError) as e:
        logger.debug(f"Нет доступа к списку соединений: {e}")
        return None

    for conn in connections:
        if conn.status != psutil.CONN_LISTEN or not conn.laddr or not conn.pid:
            continue
        if conn.laddr.port != port or not _matches_host(conn.laddr.ip, host):
            continue

        try:
            process = psutil.Process(conn.pid)
            try:
                username = process.username()
            except psutil.AccessDenied:
                username = None
            return PortOwner(pid=process.pid, name=process.name(), username=username)
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            continue

    return None


def check_port_availability(port: int, host: str = '127.0.0.1') -> Tuple[bool, str]:
    """
    Проверяет, можно ли слушать host:port

    Returns:
        tuple: (свободен ли порт, сообщение для лога)
    """
    if not is_port_in_use(port, host):
        return True, f"Порт {port} свободен"

    owner = get_process_using_port(port, host)
    if owner is None:
        return False, f"Порт {port} занят"

    message = f"Порт {port} занят процессом {owner.name} (PID: {owner.pid})"
    if owner.username:
        message += f", пользователь: {owner.username}"
    return False, message
