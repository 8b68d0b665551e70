"""
Tests for the personal finance calculators
"""

import pytest
from decimal import Decimal

from core_lending.planning import budget_split, savings_goal
from core_lending.outcomes import InvalidInput


class TestBudgetSplit:
    """Test the 50/30/20 split"""

    def test_split(self):
        split = budget_split("2000").value
        assert split.needs == Decimal("1000")
        assert split.wants == Decimal("600")
        assert split.savings == Decimal("400")

    def test_parts_add_up(self):
        split = budget_split(Decimal("1234.57")).value
        assert split.needs + split.wants + split.savings == split.income

    @pytest.mark.parametrize("income", ["0", "-100", "lots"])
    def test_invalid_income(self, income):
        result = budget_split(income)
        assert isinstance(result, InvalidInput)
        assert result.field == "income"


class TestSavingsGoal:
    """Test months to reach a savings goal"""

    def test_exact_division(self):
        plan = savings_goal("1200", "100").value
        assert plan.months == 12
        assert plan.years == 1
        assert plan.remaining_months == 0

    def test_rounds_up(self):
        plan = savings_goal("1000", "300").value
        assert plan.months == 4

    def test_years_and_months(self):
        plan = savings_goal("5000", "150").value
        assert plan.months == 34
        assert (plan.years, plan.remaining_months) == (2, 10)

    @pytest.mark.parametrize("goal,contribution,field", [
        ("0", "100", "goal"),
        ("1000", "0", "monthly_contribution"),
        ("abc", "100", "goal"),
        ("1000", "-5", "monthly_contribution"),
    ])
    def test_invalid(self, goal, contribution, field):
        result = savings_goal(goal, contribution)
        assert isinstance(result, InvalidInput)
        assert result.field == field
