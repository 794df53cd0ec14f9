"""
Tests for TierService - active experiment limits per tier
"""

import pytest

from app.models.experiment import ExperimentStatus
from app.services.tier_service import TierService, UNLIMITED


class TestCanCreateExperiment:
    """Test cases for the active-experiment limit"""

    def test_free_user_with_two_active_may_create(self, db_session, free_user, make_experiment):
        """Test free user below the limit"""
        make_experiment(free_user, name="Meditate")
        make_experiment(free_user, name="Journal")

        assert TierService().can_create_experiment(db_session, free_user) is True

    def test_free_user_with_three_active_may_not_create(self, db_session, free_user, make_experiment):
        """Test free user at the limit"""
        for name in ("Meditate", "Journal", "Walk"):
            make_experiment(free_user, name=name)

        assert TierService().can_create_experiment(db_session, free_user) is False

    def test_paid_user_is_unlimited(self, db_session, paid_user, make_experiment):
        """Test paid user regardless of count"""
        for i in range(5):
            make_experiment(paid_user, name=f"Habit {i}")

        assert TierService().can_create_experiment(db_session, paid_user) is True

    def test_completed_experiments_do_not_count(self, db_session, free_user, make_experiment):
        """Test only active experiments use a slot"""
        experiments = [make_experiment(free_user, name=name) for name in ("Meditate", "Journal", "Walk")]
        experiments[0].status = ExperimentStatus.COMPLETED
        db_session.commit()

        assert TierService().can_create_experiment(db_session, free_user) is True

    def test_other_users_experiments_do_not_count(self, db_session, free_user, make_user, make_experiment):
        """Test the count is per user"""
        other = make_user(user_id="other_user")
        for name in ("Meditate", "Journal", "Walk"):
            make_experiment(other, name=name)

        assert TierService().can_create_experiment(db_session, free_user) is True


class TestTierStatus:
    """Test cases for get_tier_status"""

    def test_free_tier_status(self, db_session, free_user, make_experiment):
        make_experiment(free_user)

        result = TierService().get_tier_status(db_session, free_user)

        assert result == {
            'tier': 'free',
            'active_experiments': 1,
            'limit': 3,
            'remaining': 2,
            'unlimited': False,
            'can_create': True,
        }

    def test_paid_tier_status(self, db_session, paid_user):
        result = TierService().get_tier_status(db_session, paid_user)

        assert result['limit'] == UNLIMITED
        assert result['remaining'] == UNLIMITED
        assert result['unlimited'] is True
        assert result['can_create'] is True

    @pytest.mark.parametrize("tier,expected", [("free", 3), ("paid", UNLIMITED)])
    def test_get_limit(self, make_user, tier, expected):
        user = make_user(user_id=f"user_{tier}", tier=tier)

        assert TierService().get_limit(user) == expected
