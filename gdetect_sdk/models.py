"""Data models for GLIMPS Detect SDK requests and responses."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

DEFAULT_WAIT_TIMEOUT = 180.0
DEFAULT_PULL_TIME = 2.0


@dataclass(frozen=True, slots=True)
class AvResult:
    """Antivirus verdict for one file of an analysis."""

    av: str = ""
    result: str = ""
    score: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> AvResult:
        return cls(
            av=data.get("av", ""),
            result=data.get("result", ""),
            score=data.get("score", 0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"av": self.av, "result": self.result, "score": self.score}


@dataclass(frozen=True, slots=True)
class FileResult:
    """Per-file results nested in an analysis result."""

    sha256: str = ""
    sha1: str = ""
    md5: str = ""
    ssdeep: str = ""
    magic: str = ""
    av_results: tuple[AvResult, ...] = ()
    size: int = 0
    is_malware: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> FileResult:
        return cls(
            sha256=data.get("sha256", ""),
            sha1=data.get("sha1", ""),
            md5=data.get("md5", ""),
            ssdeep=data.get("ssdeep", ""),
            magic=data.get("magic", ""),
            av_results=tuple(AvResult.from_dict(av) for av in data.get("av_results") or ()),
            size=data.get("size", 0),
            is_malware=data.get("is_malware", False),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "sha256": self.sha256,
            "sha1": self.sha1,
            "md5": self.md5,
            "ssdeep": self.ssdeep,
            "magic": self.magic,
            "size": self.size,
            "is_malware": self.is_malware,
        }
        if self.av_results:
            out["av_results"] = [av.to_dict() for av in self.av_results]
        return out


@dataclass(frozen=True, slots=True)
class Tag:
    """Name/value tag attached to a threat."""

    name: str = ""
    value: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> Tag:
        return cls(name=data.get("name", ""), value=data.get("value", ""))

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "value": self.value}


@dataclass(frozen=True, slots=True)
class Threat:
    """A threat reported in an analysis result, keyed by file in ``Result.threats``."""

    filenames: tuple[str, ...] = ()
    tags: tuple[Tag, ...] = ()
    score: int = 0
    magic: str = ""
    sha256: str = ""
    sha1: str = ""
    md5: str = ""
    ssdeep: str = ""
    file_size: int = 0
    mime: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> Threat:
        return cls(
            filenames=tuple(data.get("filenames") or ()),
            tags=tuple(Tag.from_dict(t) for t in data.get("tags") or ()),
            score=data.get("score", 0),
            magic=data.get("magic", ""),
            sha256=data.get("sha256", ""),
            sha1=data.get("sha1", ""),
            md5=data.get("md5", ""),
            ssdeep=data.get("ssdeep", ""),
            file_size=data.get("file_size", 0),
            mime=data.get("mime", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "filenames": list(self.filenames),
            "tags": [t.to_dict() for t in self.tags],
            "score": self.score,
            "magic": self.magic,
            "sha256": self.sha256,
            "sha1": self.sha1,
            "md5": self.md5,
            "ssdeep": self.ssdeep,
            "file_size": self.file_size,
            "mime": self.mime,
        }


@dataclass(frozen=True, slots=True)
class Result:
    """Analysis result returned by the get, search and wait operations.

    Attributes:
        uuid: Analysis identifier (``uuid`` in detect, ``id`` in syndetect).
        is_malware: Malware verdict.
        score: Numeric score of the analysis.
        done: ``True`` once the analysis is complete.
        sid: Analysis SID, used to build the expert view URL.
        token: View token, used to build the token view URL.

    ``errors`` and ``threats`` are read-only mappings. They make results
    unhashable, so compare results by value or key them by ``uuid``.
    """

    uuid: str = ""
    sha256: str = ""
    sha1: str = ""
    md5: str = ""
    ssdeep: str = ""
    is_malware: bool = False
    score: int = 0
    done: bool = False
    timestamp: int = 0
    errors: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    error: str = ""
    filetype: str = ""
    size: int = 0
    filenames: tuple[str, ...] = ()
    malwares: tuple[str, ...] = ()
    files: tuple[FileResult, ...] = ()
    sid: str = ""
    comment: str = ""
    file_count: int = 0
    duration: int = 0
    token: str = ""
    threats: Mapping[str, Threat] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_dict(cls, data: dict) -> Result:
        return cls(
            uuid=data.get("uuid") or data.get("id") or "",
            sha256=data.get("sha256", ""),
            sha1=data.get("sha1", ""),
            md5=data.get("md5", ""),
            ssdeep=data.get("ssdeep", ""),
            is_malware=data.get("is_malware", False),
            score=data.get("score", 0),
            done=data.get("done", False),
            timestamp=data.get("timestamp", 0),
            errors=MappingProxyType(dict(data.get("errors") or {})),
            error=data.get("error", ""),
            filetype=data.get("filetype", ""),
            size=data.get("size", 0),
            filenames=tuple(data.get("filenames") or ()),
            malwares=tuple(data.get("malwares") or ()),
            files=tuple(FileResult.from_dict(f) for f in data.get("files") or ()),
            sid=data.get("sid", ""),
            comment=data.get("comment", ""),
            file_count=data.get("file_count", 0),
            duration=data.get("duration", 0),
            token=data.get("token", ""),
            threats=MappingProxyType(
                {k: Threat.from_dict(v) for k, v in (data.get("threats") or {}).items()}
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize back to the API's JSON keys, leaving out empty optional members."""
        out: dict[str, Any] = {
            "uuid": self.uuid,
            "sha256": self.sha256,
            "sha1": self.sha1,
            "md5": self.md5,
            "ssdeep": self.ssdeep,
            "is_malware": self.is_malware,
            "score": self.score,
            "done": self.done,
            "timestamp": self.timestamp,
            "filetype": self.filetype,
            "size": self.size,
            "file_count": self.file_count,
            "duration": self.duration,
        }
        optional: dict[str, Any] = {
            "errors": dict(self.errors),
            "error": self.error,
            "filenames": list(self.filenames),
            "malwares": list(self.malwares),
            "files": [f.to_dict() for f in self.files],
            "sid": self.sid,
            "comment": self.comment,
            "token": self.token,
            "threats": {k: v.to_dict() for k, v in self.threats.items()},
        }
        out.update({k: v for k, v in optional.items() if v})
        return out


@dataclass(frozen=True, slots=True)
class Submission:
    """One row of the results listing."""

    uuid: str = ""
    is_malware: bool = False
    done: bool = False
    score: int = 0
    filetype: str = ""
    size: int = 0
    filenames: tuple[str, ...] = ()
    timestamp: int = 0
    malwares: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict) -> Submission:
        return cls(
            uuid=data.get("uuid", ""),
            is_malware=data.get("is_malware", False),
            done=data.get("done", False),
            score=data.get("score", 0),
            filetype=data.get("filetype", ""),
            size=data.get("size", 0),
            filenames=tuple(data.get("filenames") or ()),
            timestamp=data.get("timestamp", 0),
            malwares=tuple(data.get("malwares") or ()),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "uuid": self.uuid,
            "is_malware": self.is_malware,
            "done": self.done,
            "score": self.score,
            "filetype": self.filetype,
            "size": self.size,
            "filenames": list(self.filenames),
            "timestamp": self.timestamp,
            "malwares": list(self.malwares),
        }


@dataclass(frozen=True, slots=True)
class ProfileStatus:
    """Snapshot of the account's limits.

    Attributes:
        daily_quota: Submissions allowed per day.
        available_daily_quota: Submissions left today.
        cache: ``True`` when the server answers from its result cache.
        estimated_analysis_duration: Expected analysis time in milliseconds.
        malware_threshold: Score from which a file is flagged as malware.
    """

    daily_quota: int = 0
    available_daily_quota: int = 0
    cache: bool = False
    estimated_analysis_duration: int = 0
    malware_threshold: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> ProfileStatus:
        return cls(
            daily_quota=data.get("daily_quota", 0),
            available_daily_quota=data.get("available_daily_quota", 0),
            cache=data.get("cache", False),
            estimated_analysis_duration=data.get("estimated_analysis_duration", 0),
            malware_threshold=data.get("malware_threshold", 0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "daily_quota": self.daily_quota,
            "available_daily_quota": self.available_daily_quota,
            "cache": self.cache,
            "estimated_analysis_duration": self.estimated_analysis_duration,
            "malware_threshold": self.malware_threshold,
        }


@dataclass(frozen=True, slots=True)
class SubmitOptions:
    """Optional form fields sent with a submission."""

    tags: tuple[str, ...] = ()
    description: str = ""
    bypass_cache: bool = False
    archive_password: str = ""
    filename: str = ""


@dataclass(frozen=True, slots=True)
class WaitForOptions:
    """Submission fields plus the wait budget.

    Attributes:
        timeout: Total wait in seconds; ``0`` means the 180 s default.
        pull_time: Seconds between two result polls; ``0`` means 2 s.
    """

    tags: tuple[str, ...] = ()
    description: str = ""
    bypass_cache: bool = False
    archive_password: str = ""
    filename: str = ""
    timeout: float = DEFAULT_WAIT_TIMEOUT
    pull_time: float = DEFAULT_PULL_TIME

    def __post_init__(self) -> None:
        if self.timeout < 0:
            raise ValueError(f"timeout must be >= 0, got {self.timeout}")
        if self.pull_time < 0:
            raise ValueError(f"pull_time must be >= 0, got {self.pull_time}")
        if self.timeout == 0:
            object.__setattr__(self, "timeout", DEFAULT_WAIT_TIMEOUT)
        if self.pull_time == 0:
            object.__setattr__(self, "pull_time", DEFAULT_PULL_TIME)

    def submit_options(self) -> SubmitOptions:
        return SubmitOptions(
            tags=self.tags,
            description=self.description,
            bypass_cache=self.bypass_cache,
            archive_password=self.archive_password,
            filename=self.filename,
        )
