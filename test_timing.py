#!/usr/bin/env python3
"""
连接计时测试

测试内容:
1. 三段耗时分别相对于上一个时间点计算
2. 耗时总是非负
3. 缺失的时间点按 0 计算
4. 日志摘要格式

使用方法:
    python3 test_timing.py
    pytest test_timing.py
"""

import logging
import sys
import time

from socks2http.timing import TimingRecord

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger('timing-test')


class FakeClock:
    """按顺序返回预设时间的时钟"""

    def __init__(self, *values: float):
        self.values = list(values)

    def __call__(self) -> float:
        return self.values.pop(0)


def test_durations_relative_to_previous_milestone():
    """每段耗时相对于上一个时间点"""
    timing = TimingRecord.start(FakeClock(10.0, 10.012, 10.042, 11.234))
    timing.mark_connected()
    timing.mark_authenticated()
    timing.mark_closed()

    assert abs(timing.connect_latency - 0.012) < 1e-9
    assert abs(timing.auth_latency - 0.030) < 1e-9
    assert abs(timing.relay_duration - 1.192) < 1e-9
    assert abs(timing.total - 1.234) < 1e-9


def test_durations_non_negative():
    """时钟回退时耗时不为负"""
    timing = TimingRecord.start(FakeClock(5.0, 4.0, 3.0, 2.0))
    timing.mark_connected()
    timing.mark_authenticated()
    timing.mark_closed()
    assert timing.connect_latency == 0.0
    assert timing.auth_latency == 0.0
    assert timing.relay_duration == 0.0


def test_missing_milestones():
    """未到达的时间点按 0 计算"""
    timing = TimingRecord.start(FakeClock(1.0, 1.5))
    timing.mark_connected()
    assert timing.connect_latency == 0.5
    assert timing.auth_latency == 0.0
    assert timing.relay_duration == 0.0


def test_monotonic_default_clock():
    """默认使用单调时钟"""
    timing = TimingRecord.start()
    timing.mark_connected()
    timing.mark_authenticated()
    timing.mark_closed()
    assert timing.connect_latency >= 0
    assert timing.auth_latency >= 0
    assert timing.relay_duration >= 0


def test_summary():
    """日志摘要以毫秒输出"""
    timing = TimingRecord.start(FakeClock(0.0, 0.012, 0.042, 1.234))
    timing.mark_connected()
    timing.mark_authenticated()
    timing.mark_closed()
    summary = timing.summary('example.com:443')
    assert summary == (
        "Connection to example.com:443 closed after 1234ms "
        "(HTTP: 12ms, Auth: 30ms, Data: 1192ms)"
    ), summary


# ============================================================================
# 主程序
# ============================================================================

TESTS = [obj for name, obj in sorted(globals().items()) if name.startswith('test_') and callable(obj)]


def main() -> int:
    failed = 0
    for test in TESTS:
        start_time = time.time()
        try:
            test()
            logger.info(f"✓ PASS | {test.__name__} | {time.time() - start_time:.3f}s | {test.__doc__}")
        except Exception as e:
            failed += 1
            logger.error(f"✗ FAIL | {test.__name__} | {time.time() - start_time:.3f}s | {e!r}")
    logger.info(f"总计: {len(TESTS)}, 通过: {len(TESTS) - failed}, 失败: {failed}")
    return 1 if failed else 0


if __name__ == '__main__':
    sys.exit(main())
