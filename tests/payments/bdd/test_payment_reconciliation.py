"""BDD tests for payment reconciliation."""

from pytest_bdd import scenarios

scenarios("features/payment_reconciliation.feature")
