"""Ordered buffer of write commands pending the next commit."""

from .commands import WriteCommand


class BatchBuffer:
    """
    Commands appended since the last flush, in arrival order.

    `pending` always equals the number of commands appended since the last
    clear(). The buffer itself is not synchronized; FlushCoordinator holds
    the lock around every call.
    """

    def __init__(self):
        self._commands: list[WriteCommand] = []
        self.pending = 0

    def append(self, command: WriteCommand) -> int:
        """Add a command and return the new pending count."""
        self._commands.append(command)
        self.pending += 1
        return self.pending

    def snapshot(self) -> tuple[WriteCommand, ...]:
        return tuple(self._commands)

    def clear(self) -> None:
        self._commands.clear()
        self.pending = 0

    def __len__(self) -> int:
        return self.pending

    def __bool__(self) -> bool:
        return self.pending > 0

    def __repr__(self) -> str:
        return f"BatchBuffer(pending={self.pending})"
