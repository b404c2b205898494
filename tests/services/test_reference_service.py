"""
Tests for ReferenceService -- item and outlet registry.
"""

import pytest

from stock_kernel.exceptions import DuplicateReferenceError, UnknownReferenceError
from tests.conftest import ITEM, OUTLET_A


class TestRegistration:

    def test_register_item(self, reference_service, session):
        item = reference_service.register_item(ITEM, actor_id="admin")
        session.commit()
        assert item.is_active
        assert item.created_by_id == "admin"
        reference_service.require_item(ITEM)

    def test_duplicate_item_rejected(self, reference_service):
        reference_service.register_item(ITEM)
        with pytest.raises(DuplicateReferenceError) as exc_info:
            reference_service.register_item(ITEM)
        assert exc_info.value.reference_type == "item"

    def test_duplicate_outlet_rejected(self, reference_service):
        reference_service.register_outlet(OUTLET_A)
        with pytest.raises(DuplicateReferenceError):
            reference_service.register_outlet(OUTLET_A)

    @pytest.mark.parametrize("blank", ["", None])
    def test_blank_identifiers_rejected(self, reference_service, blank):
        with pytest.raises(UnknownReferenceError):
            reference_service.register_item(blank)
        with pytest.raises(UnknownReferenceError):
            reference_service.register_outlet(blank)


class TestValidation:

    def test_central_outlet_always_valid(self, reference_service):
        reference_service.require_outlet(None)

    def test_unregistered_references_rejected(self, reference_service):
        with pytest.raises(UnknownReferenceError) as exc_info:
            reference_service.require_item("missing")
        assert exc_info.value.reference_id == "missing"
        with pytest.raises(UnknownReferenceError):
            reference_service.require_outlet("missing")

    def test_deactivated_references_rejected(self, reference_service):
        reference_service.register_item(ITEM)
        reference_service.register_outlet(OUTLET_A)
        reference_service.deactivate_item(ITEM)
        reference_service.deactivate_outlet(OUTLET_A)

        with pytest.raises(UnknownReferenceError):
            reference_service.require_item(ITEM)
        with pytest.raises(UnknownReferenceError):
            reference_service.require_outlet(OUTLET_A)

    def test_deactivate_unknown(self, reference_service):
        with pytest.raises(UnknownReferenceError):
            reference_service.deactivate_item("missing")
        with pytest.raises(UnknownReferenceError):
            reference_service.deactivate_outlet("missing")
