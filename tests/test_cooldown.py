from icebot.cooldown import PRUNE_FACTOR, CooldownStore


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_first_hit_is_allowed_and_second_waits():
    clock = FakeClock()
    cooldowns = CooldownStore(15, clock=clock)

    assert cooldowns.hit("1001") == 0.0
    clock.now += 4
    assert cooldowns.hit("1001") == 11.0
    assert cooldowns.hit("2002") == 0.0


def test_rejected_hit_does_not_extend_the_window():
    clock = FakeClock()
    cooldowns = CooldownStore(15, clock=clock)
    cooldowns.hit("1001")
    clock.now += 10
    cooldowns.hit("1001")
    clock.now += 5
    assert cooldowns.hit("1001") == 0.0


def test_prune_drops_only_stale_entries():
    clock = FakeClock()
    cooldowns = CooldownStore(15, clock=clock)
    cooldowns.hit("old")
    clock.now += 15 * PRUNE_FACTOR + 1
    cooldowns.hit("fresh")

    assert cooldowns.prune() == 1
    assert len(cooldowns) == 1
    assert cooldowns.remaining("fresh") == 15.0


def test_prune_timing_never_changes_the_decision():
    clock = FakeClock()
    pruned = CooldownStore(15, clock=clock)
    kept = CooldownStore(15, clock=clock)
    for step in range(0, 200, 7):
        clock.now = 1000.0 + step
        assert pruned.hit("1001") == kept.hit("1001")
        pruned.prune()
