# Copyright 2021-present Kensho Technologies, LLC.
import unittest

from ..cache import InMemoryCache
from ..environment import FetchEnv, Round, RoundLog, make_empty_round_log
from ..program import Single
from .in_memory_test_sources import InMemoryTestSource


def _make_round(identifier: int, data_source: InMemoryTestSource) -> Round:
    return Round(InMemoryCache.empty(), Single(identifier, data_source), identifier, 0, 10)


class RoundLogTests(unittest.TestCase):
    def setUp(self) -> None:
        self.data_source = InMemoryTestSource("dsA", {})

    def test_empty_log(self) -> None:
        log = make_empty_round_log()
        self.assertEqual(0, len(log))
        self.assertEqual([], list(log))
        self.assertIsNone(log.last_round)
        self.assertIsNone(log.previous)

    def test_append_keeps_chronological_order(self) -> None:
        initial_log = make_empty_round_log()
        rounds = [_make_round(identifier, self.data_source) for identifier in range(3)]

        log = initial_log
        for index, new_round in enumerate(rounds):
            previous_log = log
            log = log.append(new_round)

            # After the append:
            # - the log is one round longer;
            self.assertEqual(index + 1, len(log))
            # - the newest round is referentially equal to the round we just appended;
            self.assertIs(new_round, log.last_round)
            # - the rest of the log is referentially equal to the pre-append log.
            self.assertIs(previous_log, log.previous)

        self.assertEqual(rounds, list(log))
        self.assertIs(rounds[1], log[1])
        # Appending never modifies the original log.
        self.assertEqual(0, len(initial_log))

    def test_rounds_since_ancestor(self) -> None:
        base_log = make_empty_round_log().append(_make_round(0, self.data_source))
        left_log = base_log.append(_make_round(1, self.data_source))
        right_log = base_log.append(_make_round(2, self.data_source)).append(
            _make_round(3, self.data_source)
        )

        self.assertEqual(
            [1], [fetch_round.result for fetch_round in left_log.rounds_since(base_log)]
        )
        self.assertEqual(
            [2, 3], [fetch_round.result for fetch_round in right_log.rounds_since(base_log)]
        )
        self.assertEqual((), base_log.rounds_since(base_log))

    def test_rounds_since_unrelated_log_fails(self) -> None:
        left_log = make_empty_round_log().append(_make_round(1, self.data_source))
        right_log = make_empty_round_log().append(_make_round(1, self.data_source))

        with self.assertRaises(AssertionError):
            right_log.append(_make_round(2, self.data_source)).rounds_since(left_log)

    def test_equality(self) -> None:
        shared_round = _make_round(1, self.data_source)
        log_a = make_empty_round_log().append(shared_round)
        log_b = make_empty_round_log().append(shared_round)
        self.assertEqual(log_a, log_b)
        self.assertNotEqual(make_empty_round_log(), log_a)
        self.assertIsInstance(log_a, RoundLog)


class FetchEnvTests(unittest.TestCase):
    def test_initial_environment(self) -> None:
        env = FetchEnv.initial()
        self.assertEqual(InMemoryCache.empty(), env.cache)
        self.assertEqual(0, len(env.rounds))

        cache = InMemoryCache.empty()
        self.assertIs(cache, FetchEnv.initial(cache).cache)

    def test_evolve_returns_new_environment(self) -> None:
        data_source = InMemoryTestSource("dsA", {})
        env = FetchEnv.initial()
        new_round = _make_round(1, data_source)
        new_cache = env.cache.update(data_source.identity(1), "a")

        new_env = env.evolve(new_round, new_cache)

        self.assertIs(new_cache, new_env.cache)
        self.assertEqual([new_round], list(new_env.rounds))
        self.assertEqual(0, len(env.rounds))
        self.assertIsNone(env.cache.get(data_source.identity(1)))
        self.assertEqual(10, new_round.duration)
