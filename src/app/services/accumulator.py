"""
Chunk Accumulator: fragment 도착 주기 ↔ 저장/알림 주기 분리.

producer 는 수백 개의 작은 fragment 를 보냄 → 매번 저장/브로드캐스트하면
저장소와 UI 가 감당 못함 → N개마다 flush.
"""

from src.domain.constants import DEFAULT_FLUSH_THRESHOLD


class ChunkAccumulator:
    """
    요청 단위 fragment 버퍼 (메모리, 비영속).

    Usage:
        acc = ChunkAccumulator(flush_threshold=50)
        acc.push("Hel")
        if acc.should_flush():
            store.update_answer(..., acc.snapshot())
            acc.mark_flushed()
    """

    def __init__(self, flush_threshold: int = DEFAULT_FLUSH_THRESHOLD):
        if flush_threshold < 1:
            raise ValueError(f"flush_threshold must be >= 1, got {flush_threshold}")
        self.flush_threshold = flush_threshold
        self._fragments: list[str] = []
        self._since_flush = 0

    def push(self, fragment: str) -> None:
        self._fragments.append(fragment)
        self._since_flush += 1

    def should_flush(self) -> bool:
        """마지막 flush 이후 threshold 개 이상 쌓였는지."""
        return self._since_flush >= self.flush_threshold

    def snapshot(self) -> str:
        """지금까지의 모든 fragment 를 도착 순서대로 연결."""
        return "".join(self._fragments)

    def mark_flushed(self) -> None:
        """flush 카운터 리셋 (버퍼 내용은 유지)."""
        self._since_flush = 0

    @property
    def fragment_count(self) -> int:
        return len(self._fragments)

    @property
    def is_empty(self) -> bool:
        return not self._fragments
