"""Performance score computation.

Each platform contributes a sub-score built from its raw statistics:

    leetcode   = contest_solved * 10 + practice_solved + total_problems + current_rating
    codeforces = contests * 15 + problems_solved * 2 + rating
    codechef   = contests * 12 + problems_solved * 2 + rating
    atcoder    = contests * 10 + problems_solved * 2 + rating

The performance score is the sum of the four, rounded half-up to two
decimal places. All arithmetic is Decimal so repeated recomputation is
idempotent. None counts as zero and negative inputs are clamped to zero,
so no sub-score is ever negative.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from pydantic import BaseModel

TWO_PLACES = Decimal("0.01")

LEETCODE_CONTEST_WEIGHT = 10
LEETCODE_PRACTICE_WEIGHT = 1
LEETCODE_TOTAL_WEIGHT = 1
LEETCODE_RATING_WEIGHT = 1

CODEFORCES_CONTEST_WEIGHT = 15
CODECHEF_CONTEST_WEIGHT = 12
ATCODER_CONTEST_WEIGHT = 10
PROBLEM_WEIGHT = 2
RATING_WEIGHT = 1


class Scores(BaseModel):
    leetcode: Decimal = Decimal("0.00")
    codeforces: Decimal = Decimal("0.00")
    codechef: Decimal = Decimal("0.00")
    atcoder: Decimal = Decimal("0.00")
    performance: Decimal = Decimal("0.00")


def round2(value: Decimal) -> Decimal:
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def _n(value: Optional[Any]) -> Decimal:
    if value is None:
        return Decimal(0)
    number = Decimal(str(value))
    return number if number > 0 else Decimal(0)


def leetcode_score(
    contest_solved: Optional[int],
    practice_solved: Optional[int],
    total_problems: Optional[int],
    current_rating: Optional[int],
) -> Decimal:
    return round2(
        _n(contest_solved) * LEETCODE_CONTEST_WEIGHT
        + _n(practice_solved) * LEETCODE_PRACTICE_WEIGHT
        + _n(total_problems) * LEETCODE_TOTAL_WEIGHT
        + _n(current_rating) * LEETCODE_RATING_WEIGHT
    )


def _contest_platform_score(contests, problems, rating, contest_weight: int) -> Decimal:
    return round2(
        _n(contests) * contest_weight
        + _n(problems) * PROBLEM_WEIGHT
        + _n(rating) * RATING_WEIGHT
    )


def codeforces_score(contests, problems, rating) -> Decimal:
    return _contest_platform_score(contests, problems, rating, CODEFORCES_CONTEST_WEIGHT)


def codechef_score(contests, problems, rating) -> Decimal:
    return _contest_platform_score(contests, problems, rating, CODECHEF_CONTEST_WEIGHT)


def atcoder_score(contests, problems, rating) -> Decimal:
    return _contest_platform_score(contests, problems, rating, ATCODER_CONTEST_WEIGHT)


def compute_scores(tracker) -> Scores:
    """Compute all five scores from a tracker's raw statistics."""
    lc = leetcode_score(
        tracker.leetcode_contest_solved_count,
        tracker.leetcode_practice_solved_count,
        tracker.leetcode_total_problems,
        tracker.leetcode_current_rating,
    )
    cf = codeforces_score(
        tracker.codeforces_contests_participated,
        tracker.codeforces_problems_solved,
        tracker.codeforces_rating,
    )
    cc = codechef_score(
        tracker.codechef_contests_participated,
        tracker.codechef_problems_solved,
        tracker.codechef_rating,
    )
    ac = atcoder_score(
        tracker.atcoder_contests_participated,
        tracker.atcoder_problems_solved,
        tracker.atcoder_rating,
    )
    return Scores(
        leetcode=lc,
        codeforces=cf,
        codechef=cc,
        atcoder=ac,
        performance=round2(lc + cf + cc + ac),
    )


def apply_scores(tracker) -> Scores:
    """Write the computed scores onto the tracker (no commit)."""
    scores = compute_scores(tracker)
    tracker.leetcode_score = scores.leetcode
    tracker.codeforces_score = scores.codeforces
    tracker.codechef_score = scores.codechef
    tracker.atcoder_score = scores.atcoder
    tracker.performance_score = scores.performance
    return scores
