"""Inter-stage byte channels backed by OS pipes."""

import errno
import logging
import os
from dataclasses import dataclass, field
from enum import Enum

from digenv.common.errors import ResourceExhaustedError, SystemCallError

logger = logging.getLogger(__name__)

_EXHAUSTED_ERRNOS = (errno.EMFILE, errno.ENFILE)


class ChannelEnd(str, Enum):
    """Which endpoint of a channel a stage is bound to."""

    READ = "read"
    WRITE = "write"


@dataclass
class Channel:
    """One pipe between stage ``index`` and stage ``index + 1``.

    ``closed`` only reflects closes made through :meth:`close`, i.e. the
    endpoints held by the process that created the channel.
    """

    index: int
    read_fd: int
    write_fd: int
    closed: bool = field(default=False, compare=False)

    def fd(self, end: ChannelEnd) -> int:
        return self.read_fd if end is ChannelEnd.READ else self.write_fd

    def close(self) -> None:
        """Close both endpoints in the calling process.

        Both closes are attempted; the first failure is raised afterwards.
        The channel counts as closed either way, its descriptor numbers may
        already be reused.

        Raises:
            SystemCallError: If either close fails
        """
        if self.closed:
            return
        failure = None
        for end, fd in ((ChannelEnd.WRITE, self.write_fd), (ChannelEnd.READ, self.read_fd)):
            try:
                os.close(fd)
            except OSError as e:
                if failure is None:
                    failure = (end, fd, e)
        self.closed = True

        if failure is not None:
            end, fd, e = failure
            raise SystemCallError(
                f"Could not close {end.value} side of pipe {self.index}: {e.strerror}",
                operation="close",
                channel_index=self.index,
                fd=fd,
            ) from e
        logger.debug(f"Closed channel: {{'index': {self.index}, 'read_fd': {self.read_fd}, 'write_fd': {self.write_fd}}}")


def open_channel(index: int) -> Channel:
    """Create the pipe for channel ``index``.

    Raises:
        ResourceExhaustedError: If the process or system is out of descriptors
        SystemCallError: If ``pipe()`` fails for any other reason
    """
    try:
        read_fd, write_fd = os.pipe()
    except OSError as e:
        error_class = ResourceExhaustedError if e.errno in _EXHAUSTED_ERRNOS else SystemCallError
        raise error_class(
            f"Could not initialize pipe {index}: {e.strerror}",
            operation="pipe",
            channel_index=index,
            errno=e.errno,
        ) from e

    logger.debug(f"Opened channel: {{'index': {index}, 'read_fd': {read_fd}, 'write_fd': {write_fd}}}")
    return Channel(index=index, read_fd=read_fd, write_fd=write_fd)
