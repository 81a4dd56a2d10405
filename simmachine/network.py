"""A simulated network interface built on local datagram sockets.

Each machine owns a socket file named ``SOCKET_<address>`` in a shared
directory.  Packets are delivered in order but may be dropped at random,
depending on the configured reliability.
"""

from __future__ import annotations

import logging
import os
import random
import select
import socket
import struct
from dataclasses import dataclass
from typing import Any, Callable

from .interrupt import Interrupt, IntType, MachineStatus
from .stats import NETWORK_TIME, Statistics

_log = logging.getLogger(__name__)

_HEADER = struct.Struct("<iiI")
HEADER_SIZE = _HEADER.size
MAX_WIRE_SIZE = 64  # largest packet that can go out on the wire
MAX_PACKET_SIZE = MAX_WIRE_SIZE - HEADER_SIZE  # largest data payload

_IDLE_POLL_SECONDS = 0.02


@dataclass
class PacketHeader:
    """Header prepended to every packet on the wire."""

    to: int = 0
    from_addr: int = 0
    length: int = 0

    def pack(self) -> bytes:
        """Return the wire form of the header."""
        return _HEADER.pack(self.to, self.from_addr, self.length)

    @classmethod
    def unpack(cls, data: bytes) -> PacketHeader:
        """Parse a header from the start of ``data``."""
        if len(data) < HEADER_SIZE:
            raise ValueError(f"need {HEADER_SIZE} bytes for a header, got {len(data)}")
        to, from_addr, length = _HEADER.unpack_from(data)
        return cls(to, from_addr, length)


class Network:
    """A full-duplex network device delivering fixed-size packets."""

    def __init__(
        self,
        address: int,
        reliability: float,
        read_avail: Callable[[Any], None],
        write_done: Callable[[Any], None],
        call_arg: Any,
        interrupt: Interrupt,
        stats: Statistics | None = None,
        rng: random.Random | None = None,
        directory: str | os.PathLike[str] | None = None,
    ) -> None:
        self.ident = address
        self.chance_to_work = min(max(float(reliability), 0.0), 1.0)
        self.read_handler = read_avail
        self.write_handler = write_done
        self.handler_arg = call_arg
        self.interrupt = interrupt
        self.stats = stats if stats is not None else interrupt.stats
        self._rng = rng if rng is not None else random.Random()
        self._directory = os.fspath(directory) if directory is not None else os.curdir
        self.send_busy = False
        self._in_hdr = PacketHeader()
        self._inbox = b""

        self.sock_name = self._socket_path(address)
        self._sock = socket.socket(socket.AF_UNIX, socket.SOCK_DGRAM)
        try:
            self._unlink(self.sock_name)
            self._sock.bind(self.sock_name)
        except OSError:
            self._sock.close()
            raise
        _log.debug("Created socket %s", self.sock_name)
        self._closed = False

        self.interrupt.schedule(
            Network.check_pkt_avail, self, NETWORK_TIME, IntType.NETWORK_RECV
        )

    def _socket_path(self, address: int) -> str:
        return os.path.join(self._directory, f"SOCKET_{int(address)}")

    @staticmethod
    def _unlink(path: str) -> None:
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass

    def _poll(self) -> bool:
        timeout = (
            _IDLE_POLL_SECONDS if self.interrupt.status is MachineStatus.IDLE else 0.0
        )
        readable, _, _ = select.select([self._sock], [], [], timeout)
        return bool(readable)

    def check_pkt_avail(self) -> None:
        """Poll for an incoming packet and buffer it if the inbox is free."""
        if self._closed:
            return
        self.interrupt.schedule(
            Network.check_pkt_avail, self, NETWORK_TIME, IntType.NETWORK_RECV
        )
        if self._in_hdr.length != 0:
            return
        if not self._poll():
            return

        buffer = self._sock.recv(MAX_WIRE_SIZE)
        if len(buffer) != MAX_WIRE_SIZE:
            raise RuntimeError(
                f"short packet: expected {MAX_WIRE_SIZE} bytes, got {len(buffer)}"
            )
        hdr = PacketHeader.unpack(buffer)
        if hdr.to != self.ident or hdr.length > MAX_PACKET_SIZE:
            raise ValueError(f"malformed or misaddressed packet: {hdr}")
        self._in_hdr = hdr
        self._inbox = bytes(buffer[HEADER_SIZE : HEADER_SIZE + hdr.length])
        _log.debug(
            "Network received packet from %d, length %d...", hdr.from_addr, hdr.length
        )
        self.stats.num_packets_recvd += 1
        self.read_handler(self.handler_arg)

    def send_done(self) -> None:
        """Signal that another packet may be sent."""
        self.send_busy = False
        self.stats.num_packets_sent += 1
        self.write_handler(self.handler_arg)

    def send(self, hdr: PacketHeader, data: bytes) -> None:
        """Send ``hdr.length`` bytes of ``data`` to machine ``hdr.to``.

        The write handler runs later whether or not the packet is lost.
        """
        if self.send_busy:
            raise RuntimeError("a packet is already being sent")
        if not 0 < hdr.length <= MAX_PACKET_SIZE:
            raise ValueError(
                f"packet length must be between 1 and {MAX_PACKET_SIZE}, got {hdr.length}"
            )
        if hdr.from_addr != self.ident:
            raise ValueError(
                f"packet source {hdr.from_addr} is not this machine ({self.ident})"
            )
        payload = bytes(data[: hdr.length])
        if len(payload) != hdr.length:
            raise ValueError(f"header says {hdr.length} bytes, data has {len(payload)}")
        to_name = self._socket_path(hdr.to)
        _log.debug("Sending to addr %d, %d bytes... ", hdr.to, hdr.length)

        self.interrupt.schedule(
            Network.send_done, self, NETWORK_TIME, IntType.NETWORK_SEND
        )

        if self._rng.randrange(100) >= self.chance_to_work * 100:
            _log.debug("oops, lost it!")
            return

        buffer = (hdr.pack() + payload).ljust(MAX_WIRE_SIZE, b"\0")
        sent = self._sock.sendto(buffer, to_name)
        if sent != MAX_WIRE_SIZE:
            raise RuntimeError(f"sent {sent} of {MAX_WIRE_SIZE} bytes")

    def receive(self) -> tuple[PacketHeader, bytes]:
        """Take the buffered packet, if any.

        Returns its header and data; with nothing buffered the header has
        length 0 and the data is empty.
        """
        hdr = self._in_hdr
        data = self._inbox if hdr.length != 0 else b""
        self._in_hdr = PacketHeader(hdr.to, hdr.from_addr, 0)
        self._inbox = b""
        return hdr, data

    def close(self) -> None:
        """Close the socket and remove its file."""
        if self._closed:
            return
        self._closed = True
        self._sock.close()
        self._unlink(self.sock_name)

    def __enter__(self) -> Network:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()