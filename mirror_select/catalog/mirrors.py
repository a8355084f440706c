#!/usr/bin/env python3

"""
Region-aware mirror catalog.

Region codes are partitioned into named buckets and every bucket names one
archive host (and optionally one security host) per distribution family.
Rendering a bucket for a release produces the four suites every family
needs: base, -updates, -backports and -security.
"""

from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Tuple
from dataclasses import dataclass, field
from urllib.parse import urlparse

from ..distro.detector import DistributionIdentity
from ..errors import CatalogError, UnsupportedDistributionError

SUITE_SUFFIXES = ("", "-updates", "-backports", "-security")

FAMILY_COMPONENTS = {
    "debian": ("main", "contrib", "non-free", "non-free-firmware"),
    "ubuntu": ("main", "restricted", "universe", "multiverse"),
}

# Used for the -security suite when a bucket has no regional security mirror
CANONICAL_SECURITY = {
    "debian": "https://security.debian.org/debian-security",
}

@dataclass(frozen=True)
class MirrorEntry:
    base_url: str
    suite: str
    components: Tuple[str, ...]

    @property
    def hostname(self) -> str:
        return urlparse(self.base_url).hostname or ""

    def to_line(self) -> str:
        return f"deb {self.base_url} {self.suite} {' '.join(self.components)}"

@dataclass(frozen=True)
class SourceSet:
    entries: Tuple[MirrorEntry, ...]

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    def lines(self) -> List[str]:
        return [entry.to_line() for entry in self.entries]

    def render(self) -> str:
        return "".join(f"{line}\n" for line in self.lines())

    def hostnames(self) -> Set[str]:
        return {entry.hostname for entry in self.entries}

@dataclass(frozen=True)
class FamilyMirrors:
    archive: str
    security: Optional[str] = None

@dataclass(frozen=True)
class RegionBucket:
    name: str
    description: str
    countries: FrozenSet[str]
    mirrors: Dict[str, FamilyMirrors] = field(hash=False)

def _bucket(name: str, description: str, countries: Iterable[str],
            debian: FamilyMirrors, ubuntu: FamilyMirrors) -> RegionBucket:
    return RegionBucket(
        name=name,
        description=description,
        countries=frozenset(countries),
        mirrors={"debian": debian, "ubuntu": ubuntu},
    )

def _ubuntu(archive: str) -> FamilyMirrors:
    # Ubuntu publishes the -security pocket on every archive mirror
    return FamilyMirrors(archive=archive, security=archive)

DEFAULT_BUCKETS = (
    _bucket(
        "china", "Chinese mirrors (Tsinghua University)", ["CN", "HK", "TW", "MO"],
        debian=FamilyMirrors(
            archive="https://mirrors.tuna.tsinghua.edu.cn/debian/",
            security="https://mirrors.tuna.tsinghua.edu.cn/debian-security",
        ),
        ubuntu=_ubuntu("https://mirrors.tuna.tsinghua.edu.cn/ubuntu/"),
    ),
    _bucket(
        "japan_korea", "Japanese mirrors", ["JP", "KR"],
        debian=FamilyMirrors(archive="https://ftp.jp.debian.org/debian/"),
        ubuntu=_ubuntu("https://jp.archive.ubuntu.com/ubuntu/"),
    ),
    _bucket(
        "southeast_asia", "Singapore mirrors", ["SG", "MY", "TH", "VN", "ID", "PH"],
        debian=FamilyMirrors(archive="https://ftp.sg.debian.org/debian/"),
        ubuntu=_ubuntu("https://sg.archive.ubuntu.com/ubuntu/"),
    ),
    _bucket(
        "oceania", "Australian mirrors", ["AU", "NZ"],
        debian=FamilyMirrors(archive="https://ftp.au.debian.org/debian/"),
        ubuntu=_ubuntu("https://au.archive.ubuntu.com/ubuntu/"),
    ),
    _bucket(
        "uk_ireland", "UK mirrors", ["GB", "IE"],
        debian=FamilyMirrors(archive="https://ftp.uk.debian.org/debian/"),
        ubuntu=_ubuntu("https://gb.archive.ubuntu.com/ubuntu/"),
    ),
    _bucket(
        "western_europe", "European mirrors",
        ["DE", "AT", "CH", "NL", "BE", "FR", "IT", "ES", "PT"],
        debian=FamilyMirrors(archive="https://deb.debian.org/debian/"),
        ubuntu=_ubuntu("https://archive.ubuntu.com/ubuntu/"),
    ),
)

DEFAULT_BUCKET = _bucket(
    "default", "US mirrors (default)", [],
    debian=FamilyMirrors(archive="https://deb.debian.org/debian/"),
    ubuntu=_ubuntu("https://us.archive.ubuntu.com/ubuntu/"),
)

class MirrorCatalog:
    def __init__(self, buckets: Iterable[RegionBucket] = DEFAULT_BUCKETS,
                 default: RegionBucket = DEFAULT_BUCKET,
                 components: Optional[Dict[str, Tuple[str, ...]]] = None):
        self.buckets = tuple(buckets)
        self.default = default
        self.components = dict(components or FAMILY_COMPONENTS)
        self._by_country: Dict[str, RegionBucket] = {}
        self._validate()

    def _validate(self) -> None:
        if self.default is None:
            raise CatalogError("Catalog has no default bucket")

        families = set(self.components)
        for bucket in self.buckets + (self.default,):
            missing = families - set(bucket.mirrors)
            if missing:
                raise CatalogError(
                    f"Bucket '{bucket.name}' has no mirrors for: {', '.join(sorted(missing))}"
                )

            for family, mirrors in bucket.mirrors.items():
                if family not in families:
                    raise CatalogError(f"Bucket '{bucket.name}' names unknown family '{family}'")
                if mirrors.security is None and family not in CANONICAL_SECURITY:
                    raise CatalogError(
                        f"Bucket '{bucket.name}' has no security mirror for '{family}'"
                    )

        for bucket in self.buckets:
            for country in bucket.countries:
                code = country.upper()
                if code in self._by_country:
                    raise CatalogError(
                        f"Country {code} is in both '{self._by_country[code].name}' "
                        f"and '{bucket.name}'"
                    )
                self._by_country[code] = bucket

    @property
    def families(self) -> Tuple[str, ...]:
        return tuple(self.components)

    def bucket_for(self, region: Optional[str]) -> RegionBucket:
        code = (region or "").strip().upper()
        return self._by_country.get(code, self.default)

    def render(self, region: Optional[str], distro: DistributionIdentity) -> SourceSet:
        if distro.family not in self.components:
            raise UnsupportedDistributionError(
                f"No mirrors catalogued for distribution family '{distro.family}'"
            )

        bucket = self.bucket_for(region)
        mirrors = bucket.mirrors[distro.family]
        components = self.components[distro.family]
        security = mirrors.security or CANONICAL_SECURITY[distro.family]

        entries = []
        for suffix in SUITE_SUFFIXES:
            base_url = security if suffix == "-security" else mirrors.archive
            entries.append(MirrorEntry(
                base_url=base_url,
                suite=f"{distro.codename}{suffix}",
                components=components,
            ))

        return SourceSet(entries=tuple(entries))
