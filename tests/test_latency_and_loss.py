import math

import pytest

from pingpong import config
from pingpong.ping import PingError, PingSuccess, PingTimeout
from pingpong.stats import ConnectionQuality, HostStatistics, RttStats


def ok(rtt, seq=0):
    return PingSuccess(rtt, seq, 0.0)


def lost(seq=0):
    return PingTimeout(seq, 0.0)


def failed(seq=0):
    return PingError("unreachable", seq, 0.0)


def test_empty_history():
    st = HostStatistics(10)
    assert st.packet_loss_percent() == 0.0
    assert st.packet_loss_percent_recent() == 0.0
    assert st.rtt_stats() == RttStats()
    assert st.last_result is None
    assert st.connection_quality() == ConnectionQuality.GOOD


def test_counters_balance():
    st = HostStatistics(3)
    for r in [ok(10), lost(), failed(), ok(20), lost(), lost(), failed()]:
        st.record(r)
    assert st.total == 7
    assert st.successful == 2
    assert st.timed_out == 3
    assert st.errored == 2
    assert st.successful + st.timed_out + st.errored == st.total
    # lifetime loss spans beyond the bounded history
    assert st.packet_loss_percent() == pytest.approx(5 / 7 * 100)


def test_history_evicts_oldest():
    st = HostStatistics(5)
    for seq in range(8):
        st.record(ok(10, seq))
    assert len(st.history) == 5
    assert [r.sequence for r in st.history] == [3, 4, 5, 6, 7]
    assert st.total == 8


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        HostStatistics(0)


def test_windowed_loss_uses_most_recent():
    st = HostStatistics(10)
    for r in [ok(10), lost(), ok(10), ok(10)]:
        st.record(r)
    assert st.packet_loss_percent_recent(2) == 0.0
    assert st.packet_loss_percent_recent(3) == pytest.approx(100 / 3)
    assert st.packet_loss_percent_recent(4) == 25.0
    # window larger than history uses what is there
    assert st.packet_loss_percent_recent(50) == 25.0


def test_errors_count_as_loss():
    st = HostStatistics(10)
    st.record(ok(10))
    st.record(failed())
    assert st.packet_loss_percent_recent(2) == 50.0
    assert st.packet_loss_percent() == 50.0


def test_rtt_summary():
    st = HostStatistics(10)
    for rtt in (30, 10, 20):
        st.record(ok(rtt))
    st.record(lost())
    rtt = st.rtt_stats()
    assert rtt.min == 10
    assert rtt.max == 30
    assert rtt.avg == pytest.approx(20)
    assert rtt.median == 20
    assert rtt.jitter == pytest.approx(math.sqrt(200 / 3))
    assert rtt.jitter == pytest.approx(8.165, abs=1e-3)


def test_median_even_count():
    st = HostStatistics(10)
    for rtt in (40, 10, 30, 20):
        st.record(ok(rtt))
    assert st.rtt_stats().median == 25


def test_quality_poor_on_loss():
    st = HostStatistics(50)
    for i in range(20):
        st.record(lost() if i in (3, 9, 15) else ok(40))
    assert st.packet_loss_percent_recent() == 15.0
    assert st.connection_quality() == ConnectionQuality.POOR


def test_quality_good_and_fair():
    st = HostStatistics(50)
    for _ in range(20):
        st.record(ok(60))
    assert st.packet_loss_percent_recent() == 0.0
    assert st.connection_quality() == ConnectionQuality.GOOD

    slow = HostStatistics(50)
    for _ in range(20):
        slow.record(ok(150))
    assert slow.connection_quality() == ConnectionQuality.FAIR

    very_slow = HostStatistics(50)
    very_slow.record(ok(600))
    assert very_slow.connection_quality() == ConnectionQuality.POOR


def test_quality_fair_on_light_loss():
    st = HostStatistics(50)
    for i in range(20):
        st.record(lost() if i == 0 else ok(20))
    # 1 of 20 -> 5%
    assert st.connection_quality() == ConnectionQuality.FAIR


def test_quality_only_looks_at_window():
    st = HostStatistics(100)
    for _ in range(10):
        st.record(lost())
    for _ in range(config.QUALITY_WINDOW):
        st.record(ok(20))
    assert st.packet_loss_percent() > 10
    assert st.connection_quality() == ConnectionQuality.GOOD


def test_consecutive_failures_and_recent():
    st = HostStatistics(10)
    for r in [ok(10, 0), lost(1), failed(2)]:
        st.record(r)
    assert st.consecutive_failures == 2
    assert [r.sequence for r in st.recent_results(2)] == [2, 1]
    st.record(ok(10, 3))
    assert st.consecutive_failures == 0


def test_copy_is_independent():
    st = HostStatistics(4)
    st.record(ok(10))
    snap = st.copy()
    st.record(lost())
    assert snap.total == 1
    assert len(snap.history) == 1
    assert snap.capacity == 4


def test_rtt_history_for_graph():
    st = HostStatistics(10)
    for r in [ok(10), lost(), ok(30)]:
        st.record(r)
    assert st.rtt_history_for_graph(5) == [10, None, 30, None, None]

    full = HostStatistics(10)
    for i in range(10):
        full.record(ok(i))
    assert full.rtt_history_for_graph(5) == [0, 2, 4, 6, 8]
    assert HostStatistics(3).rtt_history_for_graph(2) == [None, None]


def test_record_rejects_other_types():
    with pytest.raises(TypeError):
        HostStatistics(3).record("ok")
