"""Tests for response assertions."""

import json

import pytest
from pydantic import BaseModel

from agentflow.evaluation import (
    AssertionResult,
    BaseAssertion,
    ContainsAssertion,
    EmailFormatAssertion,
    JsonSchemaAssertion,
)
from agentflow.exceptions import ValidationError


class Product(BaseModel):
    name: str
    price: float


class ShortAnswerAssertion(BaseAssertion):
    def evaluate(self, response, *params):
        limit = params[0] if params else 20
        return self.result(len(response) <= limit, "Response is short enough", limit, len(response))


class TestBaseAssertion:
    def test_custom_assertion(self):
        assertion = ShortAnswerAssertion()
        result = assertion.evaluate("ok")

        assert assertion.name == 'ShortAnswerAssertion'
        assert result
        assert result.to_dict() == {'status': True, 'message': "Response is short enough", 'expected': 20, 'actual': 2}

    def test_to_dict_drops_missing_values(self):
        assert AssertionResult(False, "nope").to_dict() == {'status': False, 'message': "nope"}


class TestContainsAssertion:
    def test_ignores_case(self):
        assert ContainsAssertion().evaluate("Your ORDER has shipped", "order", "shipped").status

    def test_reports_missing_phrases(self):
        result = ContainsAssertion().evaluate("Your order has shipped", "order", "refund")

        assert not result.status
        assert result.actual == ['refund']

    def test_needs_phrases(self):
        with pytest.raises(ValidationError):
            ContainsAssertion().evaluate("anything")


class TestEmailFormatAssertion:
    def test_finds_address(self):
        result = EmailFormatAssertion().evaluate("Write to help@example.com for details")

        assert result.status
        assert result.actual == ['help@example.com']

    def test_no_address(self):
        assert not EmailFormatAssertion().evaluate("Write to us").status


class TestJsonSchemaAssertion:
    def test_any_json_without_schema(self):
        assert JsonSchemaAssertion().evaluate('[1, 2]').status

    def test_invalid_json(self):
        result = JsonSchemaAssertion().evaluate("Here you go: {")

        assert not result.status
        assert result.message == "Response is not valid JSON"

    def test_matches_model(self):
        response = json.dumps({'name': "Lamp", 'price': 19.5})

        assert JsonSchemaAssertion().evaluate(f"```json\n{response}\n```", Product).status

    def test_reports_schema_mismatch(self):
        result = JsonSchemaAssertion().evaluate(json.dumps({'name': "Lamp"}), Product)

        assert not result.status
        assert result.message == "Response does not match schema"
        assert 'price' in result.actual

    def test_rejects_extra_arguments(self):
        with pytest.raises(ValidationError):
            JsonSchemaAssertion().evaluate("{}", Product, Product)
