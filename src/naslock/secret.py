"""In-memory container for secret text with deterministic wiping."""

from types import TracebackType
from typing import Self


class SecretValue:
    """Secret text held in a mutable buffer that is zeroed on wipe.

    Use as a context manager to bound the lifetime of the secret:

        with SecretValue(password) as secret:
            use(secret.reveal())

    """

    __slots__ = ("_buf",)

    def __init__(self, value: str) -> None:
        self._buf: bytearray | None = bytearray(value.encode())

    def reveal(self) -> str:
        """Return the secret as text.

        Raises:
            ValueError: The secret was already wiped.

        """
        if self._buf is None:
            raise ValueError("Secret has been wiped.")
        return self._buf.decode()

    def is_blank(self) -> bool:
        """Check whether the secret is empty after trimming whitespace."""
        return not self.reveal().strip()

    @property
    def is_wiped(self) -> bool:
        """Check whether the buffer has been released."""
        return self._buf is None

    def wipe(self) -> None:
        """Overwrite the buffer with zeros and release it. Safe to call twice."""
        if self._buf is None:
            return
        for i in range(len(self._buf)):
            self._buf[i] = 0
        self._buf = None

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self, exc_type: type[BaseException] | None, exc: BaseException | None, tb: TracebackType | None
    ) -> None:
        self.wipe()

    def __repr__(self) -> str:
        return "SecretValue('**********')"

    __str__ = __repr__
