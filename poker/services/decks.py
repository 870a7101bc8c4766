from collections import namedtuple
from typing import List, Optional

CardDeck = namedtuple('CardDeck', ['id', 'name', 'values'])

UNKNOWN_CARD = '?'
BREAK_CARD = '☕'
SPECIAL_VALUES = (UNKNOWN_CARD, BREAK_CARD)

CARD_DECKS = {
    'fibonacci': CardDeck(
        'fibonacci', 'Fibonacci',
        ('0', '1', '2', '3', '5', '8', '13', '21', '34', '55', '89', UNKNOWN_CARD, BREAK_CARD),
    ),
    'modified-fibonacci': CardDeck(
        'modified-fibonacci', 'Modified Fibonacci',
        ('0', '0.5', '1', '2', '3', '5', '8', '13', '20', '40', '100', UNKNOWN_CARD, BREAK_CARD),
    ),
    't-shirt': CardDeck(
        't-shirt', 'T-Shirt Sizes',
        ('XS', 'S', 'M', 'L', 'XL', 'XXL', UNKNOWN_CARD, BREAK_CARD),
    ),
    'powers-of-2': CardDeck(
        'powers-of-2', 'Powers of 2',
        ('0', '1', '2', '4', '8', '16', '32', '64', UNKNOWN_CARD, BREAK_CARD),
    ),
}


def get_deck(deck_id: Optional[str]) -> Optional[CardDeck]:
    return CARD_DECKS.get(deck_id) if deck_id else None


def list_decks() -> List[CardDeck]:
    return list(CARD_DECKS.values())


def parse_numeric(value) -> Optional[float]:
    """Return the card value as a float, or None for special and non-numeric cards."""
    if value in SPECIAL_VALUES:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    # float() accepts 'nan' and 'inf'; neither is a card
    if number != number or number in (float('inf'), float('-inf')):
        return None
    return number


def numeric_values(deck_id: str) -> List[str]:
    """Numeric card values of a deck in ascending order."""
    deck = get_deck(deck_id)
    if not deck:
        return []
    return sorted((v for v in deck.values if parse_numeric(v) is not None), key=parse_numeric)


def is_valid_estimate(deck_id: str, value) -> bool:
    deck = get_deck(deck_id)
    if not deck or not isinstance(value, str):
        return False
    return value in deck.values and value not in SPECIAL_VALUES


def deck_to_dict(deck: CardDeck) -> dict:
    return {'id': deck.id, 'name': deck.name, 'values': list(deck.values)}
