#!/usr/bin/env python3

import pytest

from mirror_select.catalog.mirrors import (
    MirrorCatalog, MirrorEntry, RegionBucket, FamilyMirrors,
    DEFAULT_BUCKETS, DEFAULT_BUCKET, SUITE_SUFFIXES
)
from mirror_select.distro.detector import DistributionIdentity
from mirror_select.errors import CatalogError, UnsupportedDistributionError


DEBIAN = DistributionIdentity(family="debian", version="12", codename="bookworm")
UBUNTU = DistributionIdentity(family="ubuntu", version="22.04", codename="jammy")

BUCKET_SAMPLES = {
    "china": "CN",
    "japan_korea": "KR",
    "southeast_asia": "VN",
    "oceania": "NZ",
    "uk_ireland": "IE",
    "western_europe": "DE",
    "default": "US",
}


class TestMirrorEntry:

    def test_to_line(self):
        entry = MirrorEntry(
            base_url="https://deb.debian.org/debian/",
            suite="bookworm-updates",
            components=("main", "contrib"),
        )

        assert entry.to_line() == "deb https://deb.debian.org/debian/ bookworm-updates main contrib"
        assert entry.hostname == "deb.debian.org"


class TestMirrorCatalog:
    """Test rendering of region buckets into source sets"""

    def setup_method(self):
        self.catalog = MirrorCatalog()

    @pytest.mark.parametrize("distro", [DEBIAN, UBUNTU])
    @pytest.mark.parametrize("bucket_name,country", sorted(BUCKET_SAMPLES.items()))
    def test_every_bucket_renders_four_suites(self, bucket_name, country, distro):
        """Test every bucket and family yields base/updates/backports/security"""
        assert self.catalog.bucket_for(country).name == bucket_name

        source_set = self.catalog.render(country, distro)

        assert len(source_set) == 4
        suites = [entry.suite for entry in source_set]
        assert suites == [f"{distro.codename}{suffix}" for suffix in SUITE_SUFFIXES]
        for line in source_set.lines():
            assert line.startswith("deb https://")
            assert distro.codename in line

    def test_debian_china_uses_tsinghua_everywhere(self):
        lines = self.catalog.render("CN", DEBIAN).lines()

        assert lines == [
            "deb https://mirrors.tuna.tsinghua.edu.cn/debian/ bookworm main contrib non-free non-free-firmware",
            "deb https://mirrors.tuna.tsinghua.edu.cn/debian/ bookworm-updates main contrib non-free non-free-firmware",
            "deb https://mirrors.tuna.tsinghua.edu.cn/debian/ bookworm-backports main contrib non-free non-free-firmware",
            "deb https://mirrors.tuna.tsinghua.edu.cn/debian-security bookworm-security main contrib non-free non-free-firmware",
        ]

    def test_debian_security_falls_back_to_canonical_host(self):
        """Test buckets without a regional security mirror use security.debian.org"""
        source_set = self.catalog.render("JP", DEBIAN)

        assert source_set.entries[0].base_url == "https://ftp.jp.debian.org/debian/"
        assert source_set.entries[3].base_url == "https://security.debian.org/debian-security"
        assert source_set.entries[3].suite == "bookworm-security"

    def test_ubuntu_security_uses_regional_archive(self):
        source_set = self.catalog.render("SG", UBUNTU)

        assert {entry.base_url for entry in source_set} == {"https://sg.archive.ubuntu.com/ubuntu/"}

    def test_ubuntu_components(self):
        for entry in self.catalog.render("GB", UBUNTU):
            assert entry.components == ("main", "restricted", "universe", "multiverse")

    def test_debian_components(self):
        for entry in self.catalog.render("AU", DEBIAN):
            assert entry.components == ("main", "contrib", "non-free", "non-free-firmware")

    @pytest.mark.parametrize("country", ["BR", "ZA", "XX", "", None, "united states"])
    def test_unmapped_region_uses_default_bucket(self, country):
        """Test unknown codes silently fall through to the default bucket"""
        expected = self.catalog.render("US", UBUNTU)

        assert self.catalog.bucket_for(country) is DEFAULT_BUCKET
        assert self.catalog.render(country, UBUNTU) == expected
        assert self.catalog.render(country, UBUNTU) == self.catalog.render(country, UBUNTU)

    def test_lookup_is_case_insensitive(self):
        assert self.catalog.bucket_for(" cn ").name == "china"
        assert self.catalog.render("jp", DEBIAN) == self.catalog.render("JP", DEBIAN)

    def test_default_bucket_hosts(self):
        assert self.catalog.render("US", DEBIAN).hostnames() == {
            "deb.debian.org", "security.debian.org"
        }
        assert self.catalog.render("US", UBUNTU).hostnames() == {"us.archive.ubuntu.com"}

    def test_render_text_is_newline_terminated(self):
        text = self.catalog.render("DE", UBUNTU).render()

        assert text.endswith("\n")
        assert len(text.splitlines()) == 4

    def test_unknown_family_raises(self):
        fedora = DistributionIdentity(family="fedora", version="40", codename="forty")

        with pytest.raises(UnsupportedDistributionError):
            self.catalog.render("US", fedora)

    def test_families(self):
        assert self.catalog.families == ("debian", "ubuntu")


class TestCatalogValidation:
    """Test the catalog rejects data that breaks its invariants"""

    def test_bucket_missing_family(self):
        broken = RegionBucket(
            name="broken", description="", countries=frozenset(["FI"]),
            mirrors={"debian": FamilyMirrors(archive="https://ftp.fi.debian.org/debian/")},
        )

        with pytest.raises(CatalogError, match="no mirrors for: ubuntu"):
            MirrorCatalog(buckets=DEFAULT_BUCKETS + (broken,))

    def test_country_in_two_buckets(self):
        duplicate = RegionBucket(
            name="duplicate", description="", countries=frozenset(["CN"]),
            mirrors=dict(DEFAULT_BUCKET.mirrors),
        )

        with pytest.raises(CatalogError, match="Country CN"):
            MirrorCatalog(buckets=DEFAULT_BUCKETS + (duplicate,))

    def test_missing_default(self):
        with pytest.raises(CatalogError, match="no default bucket"):
            MirrorCatalog(default=None)

    def test_ubuntu_bucket_needs_security_mirror(self):
        no_security = RegionBucket(
            name="nordics", description="", countries=frozenset(["SE"]),
            mirrors={
                "debian": FamilyMirrors(archive="https://ftp.se.debian.org/debian/"),
                "ubuntu": FamilyMirrors(archive="https://se.archive.ubuntu.com/ubuntu/"),
            },
        )

        with pytest.raises(CatalogError, match="no security mirror"):
            MirrorCatalog(buckets=(no_security,))

    def test_adding_a_region_is_data_only(self):
        nordics = RegionBucket(
            name="nordics", description="Nordic mirrors", countries=frozenset(["SE", "NO"]),
            mirrors={
                "debian": FamilyMirrors(archive="https://ftp.se.debian.org/debian/"),
                "ubuntu": FamilyMirrors(
                    archive="https://se.archive.ubuntu.com/ubuntu/",
                    security="https://se.archive.ubuntu.com/ubuntu/",
                ),
            },
        )
        catalog = MirrorCatalog(buckets=DEFAULT_BUCKETS + (nordics,))

        assert catalog.bucket_for("NO").name == "nordics"
        assert catalog.render("SE", DEBIAN).entries[0].hostname == "ftp.se.debian.org"
