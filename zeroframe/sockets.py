"""Socket servers that track connections, authorisation deadlines and heartbeats."""

from __future__ import annotations

import logging
import os
import shutil
import socket
import threading
import time
import uuid
from collections.abc import Callable
from datetime import datetime
from typing import Any, Protocol

logger = logging.getLogger(__name__)

_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"
_POLL_SECONDS = 0.5


class _DataChecker(Protocol):
    def check_package_data(self, data: bytes) -> bytes | None: ...


class _MessageProcessor(Protocol):
    def on_message(self, data: bytes) -> None: ...


def _format_time(seconds: float) -> str:
    return datetime.fromtimestamp(seconds).strftime(_TIME_FORMAT)


def _format_peer(peer: Any) -> str:
    if isinstance(peer, tuple):
        host, port = peer[0], peer[1]
        if ":" in str(host):
            return f"[{host}]:{port}"
        return f"{host}:{port}"
    if isinstance(peer, bytes):
        return peer.decode("utf-8", errors="replace")
    return str(peer)


def _parse_address(address: str | tuple[str, int]) -> tuple[str, int]:
    if isinstance(address, tuple):
        return address[0], int(address[1])
    host, sep, port = address.rpartition(":")
    if not sep:
        raise ValueError(f"address {address!r} has no port")
    try:
        return host.strip("[]"), int(port)
    except ValueError as exc:
        raise ValueError(f"address {address!r} has an invalid port") from exc


class SocketConnect:
    """One accepted connection, registered with the server that accepted it."""

    def __init__(self) -> None:
        self.connect_id = ""
        self.accept_time = 0
        self.heartbeat_time = 0
        self.active = False
        self.server: SocketServer | None = None
        self.sock: socket.socket | None = None
        self.checker: _DataChecker | None = None
        self._peer = ""
        self._write_lock = threading.Lock()
        self._heartbeat_lock = threading.Lock()
        self._close_lock = threading.Lock()

    def accept(self, server: SocketServer, sock: socket.socket) -> None:
        """Take ownership of ``sock`` and register with ``server``."""
        self.sock = sock
        self.server = server
        self.accept_time = int(time.time())
        self.heartbeat_time = 0
        try:
            self._peer = _format_peer(sock.getpeername())
        except OSError:
            self._peer = ""
        self.connect_id = str(uuid.uuid4())
        server.on_connect(self)
        self.active = True

    def register_id(self) -> str:
        """Key under which the server tracks this connection."""
        return self.connect_id

    def remote_addr(self) -> str:
        return self._peer

    def authorized(self, auth_message: bytes = b"") -> bool:
        """Promote the connection to the server's authorised set."""
        if self.server is not None:
            self.server.on_authorized(self)
        return True

    def heartbeat(self) -> None:
        with self._heartbeat_lock:
            self.heartbeat_time = int(time.time())
        logger.info("sock connect %s on heartbeat", self.register_id())

    def heartbeat_check(self, heartbeat_seconds: float) -> bool:
        """False once the last heartbeat is older than ``heartbeat_seconds``."""
        now = int(time.time())
        if now - self.heartbeat_time > heartbeat_seconds:
            logger.info(
                "sock connect %s exceeding heartbeat time, acceptTime %s ,heartbeatTime %s ,"
                "now %s ,heartbeat interval %ss",
                self.register_id(),
                _format_time(self.accept_time),
                _format_time(self.heartbeat_time),
                _format_time(now),
                heartbeat_seconds,
            )
            return False
        return True

    def on_message(self, data: bytes) -> None:
        self.heartbeat()

    def write(self, data: bytes) -> None:
        if self.sock is None:
            raise OSError("connection has not been accepted")
        with self._write_lock:
            self.sock.sendall(data)

    def close(self) -> None:
        """Unregister and close the socket; later calls do nothing."""
        with self._close_lock:
            if not self.active:
                return
            if self.server is not None:
                self.server.on_disconnect(self)
            self.active = False
        if self.sock is not None:
            try:
                self.sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            self.sock.close()

    def add_checker(self, checker: _DataChecker) -> None:
        self.checker = checker

    def check_package_data(self, data: bytes) -> bytes | None:
        """Pass data through the checker; ``None`` means no complete message yet."""
        if self.checker is not None:
            return self.checker.check_package_data(data)
        return data


class SocketServer:
    """Bookkeeping shared by stream servers: accepted and authorised connections."""

    def __init__(
        self,
        auth_wait_seconds: float,
        heartbeat_seconds: float,
        heartbeat_check_interval: float,
        buffer_size: int,
        connect_factory: Callable[[], SocketConnect] | None = None,
    ) -> None:
        self.auth_wait_seconds = auth_wait_seconds
        self.heartbeat_seconds = heartbeat_seconds
        self.heartbeat_check_interval = heartbeat_check_interval
        self.buffer_size = buffer_size
        self.connect_factory: Callable[[], SocketConnect] = connect_factory or SocketConnect
        self.listener: socket.socket | None = None
        self.listening = threading.Event()
        self._accepts: dict[str, SocketConnect] = {}
        self._connects: dict[str, SocketConnect] = {}
        self._accept_lock = threading.Lock()
        self._connect_lock = threading.Lock()
        self._stopped = threading.Event()
        self._heartbeat_thread: threading.Thread | None = None

    @property
    def bound_address(self) -> Any:
        """Local address of the listening socket, once listening."""
        return self.listener.getsockname() if self.listener is not None else None

    def on_connect(self, conn: SocketConnect) -> None:
        with self._accept_lock:
            self._accepts[conn.register_id()] = conn

    def on_disconnect(self, conn: SocketConnect) -> None:
        register_id = conn.register_id()
        with self._accept_lock:
            self._accepts.pop(register_id, None)
        with self._connect_lock:
            self._connects.pop(register_id, None)

    def on_authorized(self, conn: SocketConnect) -> None:
        register_id = conn.register_id()
        with self._accept_lock:
            self._accepts.pop(register_id, None)
        with self._connect_lock:
            self._connects[register_id] = conn

    def use_connect(self, register_id: str) -> SocketConnect:
        """The authorised connection registered as ``register_id``."""
        with self._connect_lock:
            conn = self._connects.get(register_id)
        if conn is None:
            raise LookupError(f"connect {register_id} not found")
        return conn

    def check_heartbeats(self) -> list[str]:
        """Close authorised connections whose heartbeat expired; return their ids."""
        logger.info("sock heartbeat check starting")
        with self._connect_lock:
            stale = [
                conn
                for conn in self._connects.values()
                if not conn.heartbeat_check(self.heartbeat_seconds)
            ]
        closed = []
        for conn in stale:
            register_id = conn.register_id()
            logger.info("sock connect %s heartbeat timeout", register_id)
            try:
                conn.close()
            except Exception as exc:  # noqa: BLE001 - keep checking the others
                logger.error("sock connect check %s closing error : %s", register_id, exc)
            closed.append(register_id)
        logger.info("sock heartbeat check finished")
        return closed

    def _heartbeat_loop(self) -> None:
        while not self._stopped.wait(self.heartbeat_check_interval):
            self.check_heartbeats()

    def _auth_deadline(self, conn: SocketConnect) -> None:
        register_id = conn.register_id()
        with self._connect_lock:
            authorised = register_id in self._connects
        if authorised:
            logger.info("sock server connect auth checked -> %s", register_id)
        else:
            conn.close()
            logger.info("sock server connect auth time out -> %s", register_id)

    def serve_connection(self, sock: socket.socket) -> None:
        """Read from ``sock`` until it closes, dispatching complete messages."""
        conn = self.connect_factory()
        try:
            conn.accept(self, sock)
        except Exception as exc:  # noqa: BLE001 - a failed accept drops only this socket
            logger.error("sock server accept error : %s", exc)
            sock.close()
            return
        register_id = conn.register_id()
        logger.info("sock server accept connect -> %s", register_id)

        timer = threading.Timer(self.auth_wait_seconds, self._auth_deadline, args=(conn,))
        timer.daemon = True
        timer.start()
        try:
            while True:
                if not conn.active:
                    logger.error("sock server connect %s is already closed", register_id)
                    break
                try:
                    data = sock.recv(self.buffer_size)
                except OSError as exc:
                    logger.error("sock server connect %s on message error %s", register_id, exc)
                    break
                if not data:
                    logger.info("sock server connect %s reached end of stream", register_id)
                    break
                message = conn.check_package_data(data)
                if message is not None:
                    try:
                        conn.on_message(message)
                    except Exception as exc:  # noqa: BLE001 - one bad message keeps the link
                        logger.error(
                            "sock server connect %s on message error %s", register_id, exc
                        )
        finally:
            timer.cancel()
            conn.close()
            logger.info("sock server connect close -> %s", register_id)

    def _spawn(self, sock: socket.socket) -> None:
        threading.Thread(target=self.serve_connection, args=(sock,), daemon=True).start()

    def _accept_loop(self, listener: socket.socket) -> None:
        try:
            while not self._stopped.is_set():
                try:
                    sock, _ = listener.accept()
                except socket.timeout:
                    continue
                except OSError as exc:
                    if self._stopped.is_set() or listener.fileno() == -1:
                        break
                    logger.error("server accept error : %s", exc)
                    continue
                sock.settimeout(None)
                self._spawn(sock)
        finally:
            listener.close()

    def run_server(self) -> None:
        """Start the periodic heartbeat check."""
        self._stopped.clear()
        if self._heartbeat_thread is None or not self._heartbeat_thread.is_alive():
            self._heartbeat_thread = threading.Thread(target=self._heartbeat_loop, daemon=True)
            self._heartbeat_thread.start()

    def shutdown(self) -> None:
        """Stop accepting and checking, and close every tracked connection."""
        self._stopped.set()
        with self._accept_lock:
            pending = list(self._accepts.values())
        with self._connect_lock:
            pending.extend(self._connects.values())
        for conn in pending:
            try:
                conn.close()
            except Exception as exc:  # noqa: BLE001 - close the rest regardless
                logger.error("sock connect %s closing error : %s", conn.register_id(), exc)


class TCPServer(SocketServer):
    """Stream server on a TCP address of the form ``host:port``."""

    def __init__(
        self,
        address: str | tuple[str, int],
        auth_wait_seconds: float,
        heartbeat_seconds: float,
        heartbeat_check_interval: float,
        buffer_size: int,
        connect_factory: Callable[[], SocketConnect] | None = None,
    ) -> None:
        super().__init__(
            auth_wait_seconds,
            heartbeat_seconds,
            heartbeat_check_interval,
            buffer_size,
            connect_factory,
        )
        self.address = address

    def run_server(self) -> None:
        """Listen and accept connections until :meth:`shutdown`; blocks."""
        host, port = _parse_address(self.address)
        super().run_server()
        try:
            listener = socket.create_server((host, port))
        except OSError as exc:
            logger.error("tcp server start error : %s", exc)
            raise
        listener.settimeout(_POLL_SECONDS)
        self.listener = listener
        self.listening.set()
        logger.info("tcp server start success on tcp://%s", _format_peer(listener.getsockname()))
        self._accept_loop(listener)


class IPCServer(SocketServer):
    """Stream server on a Unix domain socket path; accepts in the background."""

    def __init__(
        self,
        path: str | os.PathLike[str],
        auth_wait_seconds: float,
        heartbeat_seconds: float,
        heartbeat_check_interval: float,
        buffer_size: int,
        connect_factory: Callable[[], SocketConnect] | None = None,
    ) -> None:
        super().__init__(
            auth_wait_seconds,
            heartbeat_seconds,
            heartbeat_check_interval,
            buffer_size,
            connect_factory,
        )
        self.path = os.fspath(path)

    def run_server(self) -> None:
        """Bind the socket path, replacing whatever was there, and start accepting."""
        super().run_server()
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        if os.path.isdir(self.path) and not os.path.islink(self.path):
            shutil.rmtree(self.path)
        else:
            try:
                os.remove(self.path)
            except FileNotFoundError:
                pass

        listener = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            listener.bind(self.path)
            listener.listen()
        except OSError:
            listener.close()
            raise
        listener.settimeout(_POLL_SECONDS)
        self.listener = listener
        self.listening.set()
        logger.info("ipc server start success on ipc://%s", self.path)
        threading.Thread(target=self._accept_loop, args=(listener,), daemon=True).start()


class UDPServer:
    """Datagram server handing each checked datagram to a processor."""

    def __init__(
        self,
        port: int,
        buffer_size: int,
        checker: _DataChecker | None = None,
        processor: _MessageProcessor | None = None,
    ) -> None:
        self.port = port
        self.buffer_size = buffer_size
        self.checker = checker
        self.processor = processor
        self.sock: socket.socket | None = None
        self._stopped = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def bound_address(self) -> Any:
        return self.sock.getsockname() if self.sock is not None else None

    def write(self, data: bytes, addr: tuple[str, int]) -> None:
        if self.sock is None:
            raise OSError("udp server is not running")
        self.sock.sendto(data, addr)

    def handle_datagram(self, data: bytes, addr: Any) -> bytes | None:
        """Check one datagram and pass it on; return what the processor received."""
        logger.debug(
            "udp:%s from: %s on message, data length: %d", self.port, _format_peer(addr), len(data)
        )
        if self.processor is None:
            return None
        message = self.checker.check_package_data(data) if self.checker is not None else data
        if message is None:
            return None
        try:
            self.processor.on_message(message)
        except Exception as exc:  # noqa: BLE001 - keep serving after a bad datagram
            logger.error("udp:%s on message error %s", self.port, exc)
        return message

    def _read_loop(self, sock: socket.socket) -> None:
        try:
            while not self._stopped.is_set():
                try:
                    data, addr = sock.recvfrom(self.buffer_size)
                except socket.timeout:
                    continue
                except OSError as exc:
                    if self._stopped.is_set() or sock.fileno() == -1:
                        break
                    logger.error("udp:%s read failed, err: %s", self.port, exc)
                    continue
                self.handle_datagram(data, addr)
        finally:
            sock.close()

    def run_server(self) -> None:
        """Bind every interface on the port and read in the background."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.bind(("0.0.0.0", self.port))
        except OSError as exc:
            sock.close()
            raise OSError(f"udp Listen port: {self.port} failed, reason :{exc}") from exc
        sock.settimeout(_POLL_SECONDS)
        self.sock = sock
        self._stopped.clear()
        self._thread = threading.Thread(target=self._read_loop, args=(sock,), daemon=True)
        self._thread.start()

    def shutdown(self) -> None:
        self._stopped.set()
        if self._thread is not None:
            self._thread.join(_POLL_SECONDS * 4)