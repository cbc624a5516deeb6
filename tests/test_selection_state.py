import random

import pytest

from setups.registry import REQUEST_KEYS, RICH_ORDER, SIMPLE_ORDER, FilterDimension as D
from setups.state import SelectionStore


def _populated(store):
    return {dimension for dimension, value in store.selections.items() if value is not None}


def test_order_tracks_population_order_through_edits():
    store = SelectionStore(RICH_ORDER)
    steps = [
        (D.CAR, 21),
        (D.TRACK, 31),
        (D.CLASS, 10),
        (D.TRACK, 32),
        (D.SEASON, 5),
        (D.CAR, ""),
        (D.WEEK, "3"),
        (D.WEEK, None),
        (D.YEAR, 2024),
        (D.CLASS, 11),
    ]
    for dimension, value in steps:
        store.user_change(dimension, value)
        assert store.is_consistent()
        assert set(store.order) == _populated(store)
        assert len(store.order) == len(set(store.order))


_VALUES = [None, "", 1, 2, 3, "4"]


@pytest.mark.parametrize("seed", range(25))
@pytest.mark.parametrize("fields", [RICH_ORDER, SIMPLE_ORDER])
def test_random_edit_sequences_keep_order_consistent(seed, fields):
    rng = random.Random(seed)
    store = SelectionStore(fields)
    if seed % 3 == 0:
        store.bootstrap([(dimension, 1) for dimension in rng.sample(list(fields), 3)])

    for _ in range(40):
        dimension = rng.choice(fields)
        value = rng.choice(_VALUES)
        before = list(store.order)
        if rng.random() < 0.25:
            store.auto_resolve(dimension, value)
        else:
            store.user_change(dimension, value)
            if value not in (None, "") and not store.fixed_mode and dimension in before:
                assert store.order == before[: before.index(dimension) + 1]
        assert store.is_consistent()
        requested = set(store.request_fields())
        assert requested <= {REQUEST_KEYS[d] for d in store.order}


def test_clearing_a_dimension_clears_everything_after_it():
    store = SelectionStore(RICH_ORDER)
    store.user_change(D.CAR, 21)
    store.user_change(D.TRACK, 31)
    store.user_change(D.SEASON, 4)

    cleared = store.user_change(D.CAR, "")

    assert store.order == []
    assert store.value(D.CAR) is None
    assert store.value(D.TRACK) is None
    assert store.value(D.SEASON) is None
    assert set(cleared) == {D.TRACK, D.SEASON}


def test_changing_an_earlier_dimension_truncates_later_ones():
    store = SelectionStore(RICH_ORDER)
    store.user_change(D.CLASS, 10)
    store.user_change(D.CAR, 21)
    store.user_change(D.TRACK, 31)

    cleared = store.user_change(D.CLASS, 11)

    assert store.order == [D.CLASS]
    assert store.value(D.CLASS) == 11
    assert cleared == [D.CAR, D.TRACK]
    assert store.anchor_index == 0


def test_reselecting_last_dimension_keeps_earlier_selections():
    store = SelectionStore(SIMPLE_ORDER)
    store.user_change(D.TRACK, 31)
    store.user_change(D.CAR, 21)
    store.user_change(D.CAR, 22)

    assert store.order == [D.TRACK, D.CAR]
    assert store.value(D.TRACK) == 31
    assert store.value(D.CAR) == 22


def test_request_fields_cover_prefix_up_to_anchor():
    store = SelectionStore(RICH_ORDER)
    store.user_change(D.CLASS, 10)
    store.user_change(D.CAR, 21)
    store.auto_resolve(D.TRACK, 31)

    assert store.order == [D.CLASS, D.CAR, D.TRACK]
    assert store.request_fields() == {"class_id": 10, "car_id": 21}
    assert store.request_fields(full=True) == {"class_id": 10, "car_id": 21, "track_id": 31}


def test_auto_resolve_does_not_truncate():
    store = SelectionStore(RICH_ORDER)
    store.user_change(D.CAR, 21)
    store.user_change(D.TRACK, 31)

    assert store.auto_resolve(D.CAR, None) is True
    assert store.order == [D.TRACK]
    assert store.value(D.TRACK) == 31
    assert store.auto_resolve(D.TRACK, 31) is False


def test_user_change_resets_page_and_unlocks_dimension():
    store = SelectionStore(RICH_ORDER)
    store.bootstrap([(D.CAR, 21), (D.TRACK, 31)])
    store.page = 3

    store.user_change(D.TRACK, 32)

    assert store.page == 1
    assert D.TRACK not in store.locked
    assert D.CAR in store.locked


def test_bootstrap_seeds_in_field_order_and_locks():
    store = SelectionStore(RICH_ORDER)
    store.bootstrap([(D.TRACK, 31), (D.CLASS, 10), (D.CAR, 21)])

    assert store.fixed_mode is True
    assert store.order == [D.CLASS, D.CAR, D.TRACK]
    assert store.fixed_ranking == [D.CLASS, D.CAR, D.TRACK]
    assert store.locked == {D.CLASS, D.CAR, D.TRACK}
    assert store.request_fields() == {"class_id": 10, "car_id": 21, "track_id": 31}


def test_fixed_ranking_keeps_field_order_after_new_selection():
    store = SelectionStore(RICH_ORDER)
    store.bootstrap([(D.CAR, 21), (D.TRACK, 31)])

    store.user_change(D.CLASS, 10)

    assert store.order == [D.CLASS, D.CAR, D.TRACK]
    assert store.is_consistent()


def test_clearing_class_in_fixed_mode_resets_everything():
    store = SelectionStore(RICH_ORDER)
    store.bootstrap([(D.CLASS, 10), (D.CAR, 21), (D.TRACK, 31)])

    cleared = store.user_change(D.CLASS, "")

    assert store.order == []
    assert all(value is None for value in store.selections.values())
    assert store.fixed_mode is False
    assert store.locked == set()
    assert set(cleared) == {D.CAR, D.TRACK}


@pytest.mark.parametrize("value", ["", None, "nan", "abc"])
def test_empty_values_clear_selection(value):
    store = SelectionStore(SIMPLE_ORDER)
    store.user_change(D.VERSION, 7)

    store.user_change(D.VERSION, value)

    assert store.value(D.VERSION) is None
    assert store.order == []


def test_auto_clear_before_anchor_keeps_later_dimensions_out_of_request():
    store = SelectionStore(RICH_ORDER)
    store.user_change(D.CLASS, 10)
    store.user_change(D.CAR, 21)
    store.user_change(D.TRACK, 31)
    store.user_change(D.CAR, 22)
    store.auto_resolve(D.TRACK, 33)
    assert store.request_fields() == {"class_id": 10, "car_id": 22}

    store.auto_resolve(D.CLASS, None)

    assert store.order == [D.CAR, D.TRACK]
    assert store.request_fields() == {"car_id": 22}
    assert store.request_fields(full=True) == {"car_id": 22, "track_id": 33}


def test_auto_clear_of_anchor_dimension_moves_anchor_back():
    store = SelectionStore(SIMPLE_ORDER)
    store.user_change(D.CAR, 21)
    store.user_change(D.TRACK, 31)

    store.auto_resolve(D.TRACK, None)

    assert store.anchor_index == 0
    assert store.request_fields() == {"car_id": 21}
