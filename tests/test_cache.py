from app.core.cache import TTLCache


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_entries_expire_after_ttl() -> None:
    clock = FakeClock()
    cache = TTLCache(30, clock=clock)
    cache.set("schedules", ("Senin", None), ["a"])

    clock.now = 29.9
    assert cache.get("schedules", ("Senin", None)) == ["a"]

    clock.now = 30.0
    assert cache.get("schedules", ("Senin", None)) is None
    assert not cache.contains("schedules", ("Senin", None))


def test_invalidate_only_touches_one_namespace() -> None:
    cache = TTLCache(30)
    cache.set("schedules", None, [1])
    cache.set("students", None, [2])

    cache.invalidate("schedules")
    assert not cache.contains("schedules", None)
    assert cache.get("students", None) == [2]

    cache.invalidate()
    assert not cache.contains("students", None)


def test_zero_ttl_disables_caching() -> None:
    cache = TTLCache(0)
    cache.set("students", "5A", [1])
    assert cache.get("students", "5A", default="miss") == "miss"


def test_cached_empty_list_is_a_hit() -> None:
    cache = TTLCache(30)
    cache.set("students", None, [])
    assert cache.contains("students", None)
