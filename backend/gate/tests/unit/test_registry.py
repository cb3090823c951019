import threading

from gate.keyauth.registry import Session, SessionRegistry


class TestSession:
    def test_privileged_holds_every_permission(self):
        session = Session(session_id="op", join_time=0.0, privileged=True)

        assert session.has_permission("keyauth.reload")

    def test_regular_session_needs_explicit_permission(self):
        session = Session(session_id="p", join_time=0.0, permissions=frozenset({"keyauth.stats"}))

        assert session.has_permission("keyauth.stats")
        assert not session.has_permission("keyauth.reload")


class TestSessionRegistry:
    def test_connect_starts_unauthenticated(self):
        registry = SessionRegistry()
        session = registry.on_connect("s1", name="Alice", join_time=5.0)

        assert session.join_time == 5.0
        assert registry.is_connected("s1")
        assert not registry.is_authenticated("s1")
        assert registry.get("s1") is session

    def test_join_time_defaults_to_monotonic_now(self):
        registry = SessionRegistry()

        assert registry.on_connect("s1").join_time > 0

    def test_privileged_session_is_always_authenticated(self):
        registry = SessionRegistry()
        registry.on_connect("op", privileged=True)

        assert registry.is_authenticated("op")

    def test_mark_authenticated(self):
        registry = SessionRegistry()
        registry.on_connect("s1")

        assert registry.mark_authenticated("s1")
        assert registry.mark_authenticated("s1")
        assert registry.is_authenticated("s1")

    def test_mark_unknown_session_is_refused(self):
        registry = SessionRegistry()

        assert not registry.mark_authenticated("ghost")
        assert not registry.is_authenticated("ghost")

    def test_disconnect_removes_all_state(self):
        registry = SessionRegistry()
        session = registry.on_connect("s1")
        registry.mark_authenticated("s1")

        removed = registry.on_disconnect("s1")

        assert removed is session
        assert not registry.is_connected("s1")
        assert not registry.is_authenticated("s1")
        assert registry.on_disconnect("s1") is None

    def test_reconnect_with_same_id_resets_authentication(self):
        registry = SessionRegistry()
        first = registry.on_connect("s1", join_time=1.0)
        registry.mark_authenticated("s1")

        second = registry.on_connect("s1", join_time=2.0)

        assert second is not first
        assert registry.get("s1") is second
        assert not registry.is_authenticated("s1")

    def test_invalidate_keeps_privileged_sessions(self):
        registry = SessionRegistry()
        registry.on_connect("op", privileged=True)
        for sid in ("b", "a", "c"):
            registry.on_connect(sid)
            registry.mark_authenticated(sid)

        revoked = registry.invalidate_all_non_privileged()

        assert revoked == ["a", "b", "c"]
        assert registry.is_authenticated("op")
        assert not any(registry.is_authenticated(sid) for sid in ("a", "b", "c"))
        assert registry.connected_count == 4

    def test_marking_privileged_session_is_never_revoked(self):
        registry = SessionRegistry()
        registry.on_connect("op", privileged=True)

        assert registry.mark_authenticated("op")
        assert registry.invalidate_all_non_privileged() == []
        assert registry.is_authenticated("op")

    def test_counts(self):
        registry = SessionRegistry()
        registry.on_connect("op", privileged=True)
        registry.on_connect("a")
        registry.on_connect("b")
        registry.mark_authenticated("a")

        assert registry.connected_count == 3
        assert registry.authenticated_count == 2
        assert sorted(registry.session_ids()) == ["a", "b", "op"]


class TestRegistryConcurrency:
    def test_concurrent_connects_and_marks(self):
        registry = SessionRegistry()
        per_thread = 200

        def worker(n: int) -> None:
            for i in range(per_thread):
                sid = f"{n}-{i}"
                registry.on_connect(sid)
                registry.mark_authenticated(sid)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert registry.connected_count == 6 * per_thread
        assert registry.authenticated_count == 6 * per_thread

    def test_authenticated_set_stays_within_connected(self):
        registry = SessionRegistry()

        def churn(n: int) -> None:
            for i in range(300):
                sid = f"{n}-{i % 20}"
                registry.on_connect(sid)
                registry.mark_authenticated(sid)
                if i % 3 == 0:
                    registry.on_disconnect(sid)

        def invalidate() -> None:
            for _ in range(300):
                registry.invalidate_all_non_privileged()

        threads = [threading.Thread(target=churn, args=(n,)) for n in range(4)]
        threads.append(threading.Thread(target=invalidate))
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert registry.authenticated_count <= registry.connected_count
        for sid in registry.session_ids():
            assert registry.is_connected(sid)
