import pytest

from analyzerlink.runguard import AlreadyRunningError, RunGuard, generate_key_hash


def test_key_hash_known_vector():
    assert generate_key_hash("ab", "c") == "a9993e364706816aba3e25717850c26c9cd0d89d"


def test_key_hash_depends_on_salt():
    first = generate_key_hash("app", "_memLockKey")
    second = generate_key_hash("app", "_sharedmemKey")
    assert first != second
    assert len(first) == len(second) == 40


def test_guard_keys_derived_from_key(tmp_path):
    guard = RunGuard("app", tmp_path)
    assert guard.mem_lock_key == generate_key_hash("app", "_memLockKey")
    assert guard.shared_mem_key == generate_key_hash("app", "_sharedmemKey")


def test_first_instance_runs(tmp_path):
    guard = RunGuard("app", tmp_path)
    assert guard.is_another_running() is False
    assert guard.try_to_run() is True
    assert guard.running is True
    guard.release()
    assert guard.running is False


def test_second_instance_blocked(tmp_path):
    first = RunGuard("app", tmp_path)
    second = RunGuard("app", tmp_path)
    assert first.try_to_run() is True
    assert second.is_another_running() is True
    assert second.try_to_run() is False
    assert first.is_another_running() is False
    first.release()


def test_release_lets_another_run(tmp_path):
    first = RunGuard("app", tmp_path)
    second = RunGuard("app", tmp_path)
    assert first.try_to_run() is True
    first.release()
    assert second.is_another_running() is False
    assert second.try_to_run() is True
    second.release()


def test_different_keys_independent(tmp_path):
    first = RunGuard("one", tmp_path)
    second = RunGuard("two", tmp_path)
    assert first.try_to_run() is True
    assert second.try_to_run() is True
    first.release()
    second.release()


def test_context_manager_claims_and_releases(tmp_path):
    other = RunGuard("app", tmp_path)
    with RunGuard("app", tmp_path) as guard:
        assert guard.running is True
        assert other.is_another_running() is True
    assert other.is_another_running() is False


def test_context_manager_raises_when_taken(tmp_path):
    holder = RunGuard("app", tmp_path)
    assert holder.try_to_run() is True
    with pytest.raises(AlreadyRunningError):
        with RunGuard("app", tmp_path):
            pass
    holder.release()