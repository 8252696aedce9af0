"""
인기 점수 계산식 단위 테스트 (DB 불필요)
"""
import pytest

from shopcore.services.popularity_scoring import PopularityScoringEngine
from shopcore.settings import Settings


@pytest.fixture
def engine():
    return PopularityScoringEngine(session_factory=None, settings=Settings())


@pytest.mark.unit
class TestCalculatePopularityScore:
    def test_zero_activity_scores_zero(self, engine):
        assert engine.calculate_popularity_score() == 0.0

    @pytest.mark.parametrize("field", ["view_count", "cart_count", "order_count", "purchase_count", "recent_activity"])
    def test_monotonic_in_each_input(self, engine, field):
        base = {"view_count": 10, "cart_count": 4, "order_count": 2, "purchase_count": 3, "recent_activity": 5}
        previous = engine.calculate_popularity_score(**base)
        for step in (1, 5, 50, 500):
            bumped = dict(base, **{field: base[field] + step})
            score = engine.calculate_popularity_score(**bumped)
            assert score >= previous
            previous = score

    def test_more_purchases_strictly_raise_score_below_cap(self, engine):
        low = engine.calculate_popularity_score(purchase_count=1)
        high = engine.calculate_popularity_score(purchase_count=2)
        assert high > low

    def test_output_is_clamped(self, engine):
        score = engine.calculate_popularity_score(
            view_count=10**9, cart_count=10**9, order_count=10**9, purchase_count=10**9
        )
        assert 0.0 <= score <= engine.settings.score_max

    def test_negative_inputs_treated_as_zero(self, engine):
        assert engine.calculate_popularity_score(purchase_count=-10) == 0.0

    def test_new_product_boost(self, engine):
        regular = engine.calculate_popularity_score(order_count=3)
        boosted = engine.calculate_popularity_score(order_count=3, is_new=True)
        assert boosted > regular

    def test_custom_weights(self):
        settings = Settings(score_weight_view=0, score_weight_cart=0, score_weight_order=0,
                            score_weight_purchase=1, score_recent_activity_weight=0)
        engine = PopularityScoringEngine(session_factory=None, settings=settings)
        assert engine.calculate_popularity_score(view_count=1000) == 0.0
        assert engine.calculate_popularity_score(purchase_count=1) > 0.0
