from typing import Optional, Tuple


class ReclusteringPolicy:
    """
    Interval trigger for topology recomputation: the first round always
    reclusters, afterwards every `recluster_period` rounds. Between triggers
    the previous topology is carried forward.
    """

    def __init__(self, recluster_period: int = 1):
        if recluster_period < 1:
            raise ValueError("recluster_period must be at least 1")
        self.recluster_period = int(recluster_period)
        self.last_recluster_round: Optional[int] = None

    def _time_based(self, current_round: int) -> bool:
        """Check if enough rounds have passed since last re-clustering."""
        if self.last_recluster_round is None:
            return True
        return (current_round - self.last_recluster_round) >= self.recluster_period

    def should_recluster(self, current_round: int) -> Tuple[bool, Optional[str]]:
        if self.last_recluster_round is None:
            return True, "Initial clustering"
        if self._time_based(current_round):
            return True, "Time-based trigger"
        return False, None

    def update_after_recluster(self, current_round: int):
        """
        Call this AFTER reclustering is actually performed.
        """
        self.last_recluster_round = current_round

    def epoch(self, current_round: int) -> int:
        """Reclustering epoch index of a round."""
        return current_round // self.recluster_period
