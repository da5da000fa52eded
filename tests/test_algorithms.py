import unittest

from algorithms.round_robin_load_balancer import RoundRobinLoadBalancer
from contracts.backend import Backend, Health


def make_backend(backend_id, health=Health.HEALTHY, port=8080):
    return Backend(id=backend_id, address="localhost", port=port, observed_health=health)


class TestRoundRobinLoadBalancer(unittest.TestCase):
    def test_round_robin_order(self):
        backends = [make_backend("a", port=1), make_backend("b", port=2)]
        lb = RoundRobinLoadBalancer()
        picked = [lb.pick(backends).id for _ in range(4)]
        self.assertEqual(picked, ["a", "b", "a", "b"])

    def test_skips_unhealthy_and_unknown(self):
        backends = [
            make_backend("a", Health.UNHEALTHY),
            make_backend("b"),
            make_backend("c", Health.UNKNOWN),
            make_backend("d"),
        ]
        lb = RoundRobinLoadBalancer()
        picked = [lb.pick(backends).id for _ in range(4)]
        self.assertEqual(picked, ["b", "d", "b", "d"])

    def test_no_healthy_returns_none(self):
        lb = RoundRobinLoadBalancer()
        self.assertIsNone(lb.pick([make_backend("a", Health.UNHEALTHY)]))
        self.assertIsNone(lb.pick([]))

    def test_even_distribution(self):
        backends = [make_backend("a"), make_backend("b")]
        lb = RoundRobinLoadBalancer()
        for n in (1, 2, 7, 100):
            with self.subTest(n=n):
                counts = {"a": 0, "b": 0}
                for _ in range(n):
                    counts[lb.pick(backends).id] += 1
                self.assertLessEqual(abs(counts["a"] - counts["b"]), 1)

    def test_recovered_backend_rejoins_in_pool_order(self):
        backends = [make_backend("a"), make_backend("b"), make_backend("c")]
        lb = RoundRobinLoadBalancer()
        self.assertEqual(lb.pick(backends).id, "a")
        backends[1].observed_health = Health.UNHEALTHY
        self.assertEqual(lb.pick(backends).id, "c")
        backends[1].observed_health = Health.HEALTHY
        self.assertEqual(lb.pick(backends).id, "a")
        self.assertEqual(lb.pick(backends).id, "b")


if __name__ == "__main__":
    unittest.main()
