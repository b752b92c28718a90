import os
from datetime import datetime, timedelta

import pytest

import usg_hole
from usg_hole import IPV4, IPV6, BackupRotator, MissingPathError


def _write_live(live_files, marker="one"):
    for family, path in live_files.items():
        with open(path, "w") as f:
            f.write(f"address=/{marker}.example.com/{usg_hole.NULL_TARGETS[family]}/\n")


@pytest.fixture
def rotator(workspace, clock):
    return BackupRotator(str(workspace), clock=clock)


class TestRotate:

    def test_first_rotation_creates_backup_and_pointer(self, rotator, workspace, live_files):
        _write_live(live_files)
        created = rotator.rotate(live_files)

        expected = workspace / "usg-hole-blacklist-ipv4-202610171200.conf"
        assert created[IPV4] == str(expected)
        assert expected.read_text() == "address=/one.example.com/0.0.0.0/\n"
        assert os.path.islink(workspace / "@last-ipv4")
        assert os.readlink(workspace / "@last-ipv4") == str(expected)
        assert rotator.latest(IPV6) == str(workspace / "usg-hole-blacklist-ipv6-202610171200.conf")

    def test_pointer_follows_newest_and_previous_is_removed(self, rotator, workspace,
                                                            live_files, clock):
        _write_live(live_files)
        previous = rotator.rotate(live_files)

        for n in range(3):
            clock.advance()
            _write_live(live_files, marker=f"gen{n}")
            created = rotator.rotate(live_files)
            for family in (IPV4, IPV6):
                assert rotator.latest(family) == created[family]
                assert not os.path.exists(previous[family])
                assert rotator.backups(family) == [created[family]]
            previous = created

        pointers = sorted(p for p in os.listdir(workspace) if p.startswith("@last-"))
        assert pointers == ["@last-ipv4", "@last-ipv6"]
        with open(rotator.latest(IPV4)) as f:
            assert "gen2.example.com" in f.read()

    def test_missing_live_files_is_fatal_and_creates_nothing(self, rotator, workspace,
                                                             live_files):
        with pytest.raises(MissingPathError):
            rotator.rotate(live_files)
        assert os.listdir(workspace) == []

    def test_one_missing_family_creates_nothing(self, rotator, workspace, live_files):
        with open(live_files[IPV4], "w") as f:
            f.write("")
        with pytest.raises(MissingPathError):
            rotator.rotate(live_files)
        assert os.listdir(workspace) == []

    def test_missing_workspace_is_fatal(self, tmp_path, live_files, clock):
        _write_live(live_files)
        rotator = BackupRotator(str(tmp_path / "gone"), clock=clock)
        with pytest.raises(MissingPathError):
            rotator.rotate(live_files)

    def test_same_minute_rotation_gets_a_distinct_name(self, rotator, workspace, live_files):
        _write_live(live_files, marker="first")
        first = rotator.rotate(live_files)
        _write_live(live_files, marker="second")
        second = rotator.rotate(live_files)

        assert second[IPV4] == str(workspace / "usg-hole-blacklist-ipv4-202610171200-2.conf")
        assert second[IPV4] != first[IPV4]
        assert not os.path.exists(first[IPV4])
        with open(rotator.latest(IPV4)) as f:
            assert "second.example.com" in f.read()

    def test_both_families_share_one_timestamp(self, workspace, live_files):
        ticks = iter(datetime(2026, 10, 17, 12, 0, 59) + timedelta(seconds=2 * n)
                     for n in range(10))
        rotator = BackupRotator(str(workspace), clock=lambda: next(ticks))
        _write_live(live_files)
        created = rotator.rotate(live_files)

        assert {os.path.basename(p).rsplit("-", 1)[1] for p in created.values()} == {
            "202610171200.conf"}

    def test_retention_keeps_newest_backups(self, workspace, live_files, clock):
        rotator = BackupRotator(str(workspace), retention=3, clock=clock)
        created = []
        for n in range(5):
            _write_live(live_files, marker=f"gen{n}")
            created.append(rotator.rotate(live_files)[IPV4])
            clock.advance()

        assert rotator.backups(IPV4) == created[-3:]
        assert rotator.latest(IPV4) == created[-1]
        for path in created[:2]:
            assert not os.path.exists(path)

    def test_backups_are_ordered_by_timestamp_then_suffix(self, rotator, workspace):
        for name in ("usg-hole-blacklist-ipv4-202610171201.conf",
                     "usg-hole-blacklist-ipv4-202610171200-2.conf",
                     "usg-hole-blacklist-ipv4-202610171200.conf",
                     "usg-hole-blacklist-ipv6-202610171159.conf",
                     "unrelated.conf"):
            (workspace / name).write_text("")

        assert [os.path.basename(p) for p in rotator.backups(IPV4)] == [
            "usg-hole-blacklist-ipv4-202610171200.conf",
            "usg-hole-blacklist-ipv4-202610171200-2.conf",
            "usg-hole-blacklist-ipv4-202610171201.conf",
        ]

    def test_dangling_pointer_is_replaced(self, rotator, workspace, live_files):
        os.symlink(str(workspace / "vanished.conf"), str(workspace / "@last-ipv4"))
        _write_live(live_files)
        created = rotator.rotate(live_files)
        assert rotator.latest(IPV4) == created[IPV4]


class TestRestore:

    def test_restore_copies_last_backup_over_live_files(self, rotator, live_files):
        _write_live(live_files, marker="good")
        rotator.rotate(live_files)
        _write_live(live_files, marker="broken")

        rotator.restore(live_files)

        with open(live_files[IPV4]) as f:
            assert f.read() == "address=/good.example.com/0.0.0.0/\n"
        with open(live_files[IPV6]) as f:
            assert f.read() == "address=/good.example.com/::1/\n"

    def test_restore_without_backup_is_fatal(self, rotator, live_files):
        with pytest.raises(MissingPathError):
            rotator.restore(live_files)
