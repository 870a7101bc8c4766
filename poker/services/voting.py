from collections import Counter
from typing import Iterable, List, Optional

from .decks import numeric_values, parse_numeric


def _vote_pair(vote):
    if isinstance(vote, dict):
        return vote.get('userId'), vote.get('value')
    return vote.user_id, vote.value


def average(values: Iterable[str]) -> Optional[float]:
    """Mean of the numeric values; special markers and non-numeric cards are ignored."""
    numbers = [n for n in (parse_numeric(v) for v in values) if n is not None]
    if not numbers:
        return None
    return sum(numbers) / len(numbers)


def most_common(values: Iterable[str]) -> Optional[str]:
    """The single most frequent value, or None when several values share the top count."""
    counts = Counter(values)
    if not counts:
        return None
    top = max(counts.values())
    winners = [value for value, count in counts.items() if count == top]
    return winners[0] if len(winners) == 1 else None


def nearest_card_value(avg: Optional[float], deck_id: str) -> Optional[str]:
    """Snap an average to the closest numeric card in the deck; the lower card wins exact ties."""
    if avg is None:
        return None
    nearest = None
    best = None
    for value in numeric_values(deck_id):
        distance = abs(parse_numeric(value) - avg)
        if best is None or distance < best:
            nearest, best = value, distance
    return nearest


def outliers(votes) -> List[str]:
    """User ids of the lowest and highest voters when there are more than two numeric votes."""
    numeric = []
    for vote in votes:
        user_id, value = _vote_pair(vote)
        number = parse_numeric(value)
        if number is not None:
            numeric.append((user_id, number))
    if len(numeric) <= 2:
        return []
    low = min(n for _, n in numeric)
    high = max(n for _, n in numeric)
    if low == high:
        return []
    return [user_id for user_id, n in numeric if n in (low, high)]


def summarize(votes, deck_id: str) -> dict:
    votes = list(votes)
    values = [_vote_pair(v)[1] for v in votes]
    avg = average(values)
    return {
        'average': avg,
        'mostCommon': most_common(values),
        'nearestCard': nearest_card_value(avg, deck_id),
        'outliers': outliers(votes),
        'distribution': dict(Counter(values)),
    }
