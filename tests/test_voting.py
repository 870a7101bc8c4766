from types import SimpleNamespace

import pytest

from poker.services.decks import (
    get_deck, is_valid_estimate, list_decks, numeric_values, parse_numeric,
)
from poker.services.voting import (
    average, most_common, nearest_card_value, outliers, summarize,
)


def _vote(user_id, value):
    return SimpleNamespace(user_id=user_id, value=value)


def test_average_ignores_special_cards():
    assert average(['3', '5', '8']) == pytest.approx((3 + 5 + 8) / 3)
    assert average(['?', '☕']) is None
    assert average(['1', 'XL', '?', '2']) == pytest.approx(1.5)
    assert average([]) is None


def test_most_common_refuses_to_break_ties():
    assert most_common(['5', '5', '8']) == '5'
    assert most_common(['5', '8']) is None
    assert most_common([]) is None


def test_nearest_card_prefers_lower_card_on_exact_tie():
    # 6.5 is 1.5 away from both 5 and 8
    assert nearest_card_value(6.5, 'fibonacci') == '5'
    assert nearest_card_value(4, 'fibonacci') == '3'
    assert nearest_card_value(7.9, 'fibonacci') == '8'
    assert nearest_card_value(0.7, 'modified-fibonacci') == '0.5'


def test_nearest_card_without_numeric_cards():
    assert nearest_card_value(None, 'fibonacci') is None
    assert nearest_card_value(3, 't-shirt') is None
    assert nearest_card_value(3, 'no-such-deck') is None


def test_outliers_need_more_than_two_numeric_votes():
    votes = [_vote('a', '1'), _vote('b', '5'), _vote('c', '8'), _vote('d', '?')]
    assert sorted(outliers(votes)) == ['a', 'c']
    assert outliers([_vote('a', '1'), _vote('b', '8')]) == []
    assert outliers([_vote('a', '5'), _vote('b', '5'), _vote('c', '5')]) == []


def test_outliers_accept_wire_votes():
    votes = [{'userId': 'a', 'value': '2'}, {'userId': 'b', 'value': '3'}, {'userId': 'c', 'value': '13'}]
    assert sorted(outliers(votes)) == ['a', 'c']


def test_summarize():
    votes = [_vote('alice', '3'), _vote('bob', '5'), _vote('cara', '5'), _vote('dan', '8')]
    summary = summarize(votes, 'fibonacci')
    assert summary['average'] == pytest.approx(5.25)
    assert summary['mostCommon'] == '5'
    assert summary['nearestCard'] == '5'
    assert summary['distribution'] == {'3': 1, '5': 2, '8': 1}
    assert summary['outliers'] == ['alice', 'dan']


def test_deck_registry():
    assert {d.id for d in list_decks()} == {'fibonacci', 'modified-fibonacci', 't-shirt', 'powers-of-2'}
    assert get_deck('unknown') is None
    assert numeric_values('modified-fibonacci')[:3] == ['0', '0.5', '1']
    assert numeric_values('t-shirt') == []
    assert parse_numeric('nan') is None
    assert parse_numeric('☕') is None


def test_valid_estimates_exclude_special_cards():
    assert is_valid_estimate('fibonacci', '8')
    assert not is_valid_estimate('fibonacci', '7')
    assert not is_valid_estimate('fibonacci', '?')
    assert not is_valid_estimate('fibonacci', '☕')
    assert is_valid_estimate('t-shirt', 'XL')
    assert not is_valid_estimate('no-such-deck', '8')
    assert not is_valid_estimate('fibonacci', 8)
