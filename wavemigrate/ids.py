"""Wave and wavelet identifiers in their ``domain!id`` serialised form."""

from __future__ import annotations

from dataclasses import dataclass

SEPARATOR = "!"


def _split(serialised: str, kind: str):
    domain, sep, local_id = serialised.partition(SEPARATOR)
    if not sep or not domain or not local_id:
        raise ValueError(f"Invalid {kind} id: {serialised!r}")
    return domain, local_id


@dataclass(frozen=True)
class WaveId:
    domain: str
    id: str

    def serialise(self) -> str:
        return f"{self.domain}{SEPARATOR}{self.id}"

    @classmethod
    def deserialise(cls, serialised: str) -> "WaveId":
        return cls(*_split(serialised, "wave"))

    def rescoped(self, domain: str) -> "WaveId":
        return WaveId(domain, self.id)

    def __str__(self) -> str:
        return self.serialise()


@dataclass(frozen=True)
class WaveletId:
    domain: str
    id: str

    def serialise(self) -> str:
        return f"{self.domain}{SEPARATOR}{self.id}"

    @classmethod
    def deserialise(cls, serialised: str) -> "WaveletId":
        return cls(*_split(serialised, "wavelet"))

    def rescoped(self, domain: str) -> "WaveletId":
        return WaveletId(domain, self.id)

    def __str__(self) -> str:
        return self.serialise()


@dataclass(frozen=True)
class WaveletName:
    wave_id: WaveId
    wavelet_id: WaveletId

    def __str__(self) -> str:
        return f"[WaveletName {self.wave_id} {self.wavelet_id}]"
