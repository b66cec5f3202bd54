"""
1D complex sequences used for the angular correlation signal.
"""

from __future__ import annotations

from typing import Iterable

import numpy as np

from .errors import DimensionMismatchError, InvalidDimensionError


class Array1D:
    """A fixed-length complex sequence with whole-sequence transforms.

    Transforms follow NumPy's fft/ifft convention (round-trip scale 1).
    """

    def __init__(self, length: int):
        length = int(length)
        if length <= 0:
            raise InvalidDimensionError(f"Array1D length must be positive, got {length}")
        self.values = np.zeros(length, dtype=np.complex128)

    @classmethod
    def from_values(cls, values: Iterable[complex]) -> "Array1D":
        data = np.asarray(values, dtype=np.complex128).reshape(-1)
        arr = cls(len(data))
        arr.values = data.copy()
        return arr

    def __len__(self) -> int:
        return len(self.values)

    def __getitem__(self, index: int) -> complex:
        return complex(self.values[int(index) % len(self.values)])

    def __setitem__(self, index: int, value: complex) -> None:
        self.values[int(index) % len(self.values)] = value

    @property
    def real(self) -> np.ndarray:
        return self.values.real

    def fft(self) -> "Array1D":
        self.values = np.fft.fft(self.values)
        return self

    def ifft(self) -> "Array1D":
        self.values = np.fft.ifft(self.values)
        return self

    def remove_mean(self) -> "Array1D":
        self.values -= self.values.mean()
        return self

    def _check_length(self, other: "Array1D") -> None:
        if len(self) != len(other):
            raise DimensionMismatchError(
                f"Cannot combine sequences of length {len(self)} and {len(other)}"
            )

    def conjugate_multiply(self, other: "Array1D") -> "Array1D":
        """In place values * conj(other.values)."""
        self._check_length(other)
        self.values *= np.conj(other.values)
        return self

    def correlate(self, other: "Array1D") -> "Array1D":
        """Circular cross-correlation c[m] = sum_n self[n + m] * conj(other[n]).

        Both inputs are spatial-domain sequences and are left untouched.
        """
        self._check_length(other)
        out = Array1D.from_values(self.values)
        spectrum = np.fft.fft(other.values)
        out.fft()
        out.values *= np.conj(spectrum)
        return out.ifft()

    def __iadd__(self, other: "Array1D") -> "Array1D":
        self._check_length(other)
        self.values += other.values
        return self

    def max_real_index(self) -> int:
        return int(np.argmax(self.values.real))

    def copy(self) -> "Array1D":
        return Array1D.from_values(self.values)

    def __repr__(self) -> str:
        return f"Array1D(length={len(self)})"
