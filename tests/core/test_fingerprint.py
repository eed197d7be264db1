"""
Unit tests for build fingerprints.
"""

from pathlib import Path

from qtbuildkit.core.fingerprint import PREFIX, Fingerprint, short
from qtbuildkit.toolchain.base import ToolchainIdentity


class TestFingerprint:
    """Tests for the Fingerprint builder."""

    def test_digest_format(self):
        """Test the sha256:<hex> format."""
        digest = Fingerprint("module").add("name", "core").digest()

        assert digest.startswith(PREFIX)
        assert len(digest) == len(PREFIX) + 64

    def test_deterministic(self):
        """Test that identical inputs give identical digests."""
        a = Fingerprint("module").add("defines", {"B": "2", "A": None}).digest()
        b = Fingerprint("module").add("defines", {"A": None, "B": "2"}).digest()

        assert a == b

    def test_kind_matters(self):
        """Test that the artifact kind is part of the digest."""
        assert Fingerprint("module").digest() != Fingerprint("tool").digest()

    def test_field_names_matter(self):
        """Test that the same value under another name changes the digest."""
        a = Fingerprint("module").add("flags", ["-O2"]).digest()
        b = Fingerprint("module").add("defines", ["-O2"]).digest()

        assert a != b

    def test_list_order_matters(self):
        """Test that source order is significant."""
        a = Fingerprint("module").add("sources", ["a.cpp", "b.cpp"]).digest()
        b = Fingerprint("module").add("sources", ["b.cpp", "a.cpp"]).digest()

        assert a != b

    def test_file_content_changes_digest(self, tmp_path):
        """Test that editing a file changes the fingerprint."""
        source = tmp_path / "a.cpp"
        source.write_text("int a;\n")
        before = Fingerprint("module").add_files("sources", [source]).digest()

        source.write_text("int a = 1;\n")
        after = Fingerprint("module").add_files("sources", [source]).digest()

        assert before != after

    def test_toolchain_identity_changes_digest(self):
        """Test that a compiler upgrade changes the fingerprint."""
        gcc12 = ToolchainIdentity("gcc", "12.3.0", "x86_64-linux-gnu")
        gcc13 = ToolchainIdentity("gcc", "13.2.0", "x86_64-linux-gnu")

        assert (
            Fingerprint("module").add("toolchain", gcc12).digest()
            != Fingerprint("module").add("toolchain", gcc13).digest()
        )

    def test_paths_and_sets(self):
        """Test that paths and sets are canonicalized."""
        a = Fingerprint("x").add("dirs", {Path("b"), Path("a")}).digest()
        b = Fingerprint("x").add("dirs", {Path("a"), Path("b")}).digest()

        assert a == b

    def test_short(self):
        """Test the short fingerprint form used in directory names."""
        digest = Fingerprint("module").digest()

        assert short(digest) == digest[len(PREFIX):][:16]
        assert len(short(digest, 8)) == 8
