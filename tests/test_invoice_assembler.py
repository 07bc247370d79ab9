from datetime import date, datetime
from decimal import Decimal

from src.api.common.constants.billing import AttendanceStatus, ContractStatus, SendStatus
from src.api.contracts.schemas.contract import AccountInput
from src.api.billing.services.record_store import RecordStore
from src.api.common.utils.encryption import decrypt_data
from src.api.invoices.services.invoice_assembler import InvoiceAssembler
from src.api.invoices.services.invoice_service import InvoiceService


class TestInvoiceAssembler:
    """Test invoice construction and upsert"""

    def test_upsert_is_idempotent(self, test_session, test_data_factory):
        """Repeating an upsert updates the same row with the same amounts"""
        contract = test_data_factory.create_calendar_contract(test_session, status=ContractStatus.CONFIRMED)
        test_data_factory.record_attendance(
            test_session, contract, datetime(2024, 1, 9, 15), AttendanceStatus.ABSENT)
        records = list(contract.attendance_records)
        assembler = InvoiceAssembler(test_session)

        first = assembler.upsert_invoice(
            contract, 2024, 1, 1, records, period_start=date(2024, 1, 1), period_end=date(2024, 1, 31))
        first_id, first_final = first.id, first.final_amount
        second = assembler.upsert_invoice(
            contract, 2024, 1, 1, records, period_start=date(2024, 1, 1), period_end=date(2024, 1, 31))

        assert second.id == first_id
        assert second.final_amount == first_final
        assert second.base_amount == Decimal("100000")
        assert second.auto_adjustment == Decimal("-11111")
        assert second.planned_count == 9

    def test_new_invoice_defaults(self, test_session, test_data_factory):
        """New invoices start unsent with no manual adjustment"""
        contract = test_data_factory.create_contract(test_session, status=ContractStatus.CONFIRMED)
        invoice = InvoiceAssembler(test_session).upsert_invoice(
            contract, 2024, 1, 1, [], due_date=date(2024, 1, 1))

        assert invoice.send_status == SendStatus.NOT_SENT
        assert invoice.manual_adjustment == Decimal("0")
        assert invoice.final_amount == Decimal("100000")
        assert invoice.due_date == date(2024, 1, 1)

    def test_manual_adjustment_preserved(self, test_session, test_data_factory, mock_sms_client):
        """Recomputing keeps the manual adjustment in the final amount"""
        contract = test_data_factory.create_calendar_contract(test_session, status=ContractStatus.SENT)
        invoice = contract_invoice(test_session, contract)
        InvoiceService(test_session, mock_sms_client).update_manual_adjustment(
            contract.provider_id, invoice.id, Decimal("-5000"), "Sibling discount")

        test_data_factory.record_attendance(
            test_session, contract, datetime(2024, 1, 9, 15), AttendanceStatus.ABSENT)
        test_session.refresh(invoice)

        assert invoice.manual_adjustment == Decimal("-5000")
        assert invoice.auto_adjustment == Decimal("-11111")
        assert invoice.final_amount == invoice.base_amount + invoice.auto_adjustment + invoice.manual_adjustment
        assert invoice.final_amount == Decimal("83889")

    def test_due_date_only_set_when_given(self, test_session, test_data_factory):
        """A recompute without a due date leaves the stored one alone"""
        contract = test_data_factory.create_contract(test_session, status=ContractStatus.CONFIRMED)
        assembler = InvoiceAssembler(test_session)
        assembler.upsert_invoice(contract, 2024, 1, 1, [], due_date=date(2024, 1, 5))
        invoice = assembler.upsert_invoice(contract, 2024, 1, 1, [])

        assert invoice.due_date == date(2024, 1, 5)


class TestResolveBaseAmount:
    """Test base amounts along the extension chain"""

    def test_first_invoice_bills_contract_price(self, test_session, test_data_factory):
        """Invoice 1 bills the contract price"""
        contract = test_data_factory.create_contract(test_session, status=ContractStatus.SENT)
        assert InvoiceAssembler(test_session).resolve_base_amount(contract, 1) == Decimal("100000")

    def test_extension_price_wins(self, test_session, test_data_factory):
        """An explicit extension price is billed as is"""
        contract = test_data_factory.create_contract(test_session, status=ContractStatus.SENT)
        test_data_factory.extend_contract(
            test_session, contract, added_sessions=5, extension_price=Decimal("45000"))
        test_session.refresh(contract)

        assert InvoiceAssembler(test_session).resolve_base_amount(contract, 2) == Decimal("45000")

    def test_session_extension_priced_per_session(self, test_session, test_data_factory):
        """Without a price, added sessions are billed at the unit price"""
        contract = test_data_factory.create_contract(test_session, status=ContractStatus.SENT)
        test_data_factory.extend_contract(test_session, contract, added_sessions=5)
        test_session.refresh(contract)

        assert InvoiceAssembler(test_session).resolve_base_amount(contract, 2) == Decimal("50000")

    def test_amount_extension_bills_added_amount(self, test_session, test_data_factory):
        """Amount extensions bill the added balance"""
        contract = test_data_factory.create_amount_contract(test_session, status=ContractStatus.SENT)
        test_data_factory.extend_contract(test_session, contract, added_amount=Decimal("100000"))
        test_session.refresh(contract)

        assert InvoiceAssembler(test_session).resolve_base_amount(contract, 2) == Decimal("100000")

    def test_missing_extension(self, test_session, test_data_factory):
        """An invoice number without an extension has no base"""
        contract = test_data_factory.create_contract(test_session, status=ContractStatus.SENT)
        assert InvoiceAssembler(test_session).resolve_base_amount(contract, 3) == Decimal("0")


class TestAccountSnapshot:
    """Test the payout account frozen on invoices"""

    def test_provider_account(self, test_session, test_data_factory):
        """The provider's account is captured when no override exists"""
        contract = test_data_factory.create_contract(test_session, status=ContractStatus.SENT)
        invoice = contract_invoice(test_session, contract)

        assert invoice.account_snapshot["bank_name"] == "Test Bank"
        assert decrypt_data(invoice.account_snapshot["encrypted_account_number"]) == "110-123-456789"

    def test_contract_override(self, test_session, test_data_factory):
        """A contract account override takes precedence"""
        contract = test_data_factory.create_contract(
            test_session, status=ContractStatus.SENT,
            account_override=AccountInput(
                bank_name="Other Bank", account_holder="Kim", account_number="999-000"))
        invoice = contract_invoice(test_session, contract)

        assert invoice.account_snapshot["bank_name"] == "Other Bank"
        assert decrypt_data(invoice.account_snapshot["encrypted_account_number"]) == "999-000"

    def test_snapshot_not_rewritten(self, test_session, test_data_factory):
        """Changing the provider account later leaves existing invoices alone"""
        contract = test_data_factory.create_contract(test_session, status=ContractStatus.SENT)
        provider = contract.provider
        provider.bank_name = "New Bank"
        test_session.add(provider)
        test_session.commit()

        test_data_factory.record_attendance(test_session, contract, datetime(2024, 1, 2, 15))
        invoice = contract_invoice(test_session, contract)
        assert invoice.account_snapshot["bank_name"] == "Test Bank"

    def test_incomplete_account(self, test_session, test_data_factory):
        """Providers without an account produce no snapshot"""
        provider = test_data_factory.create_provider(test_session, bank_name=None, account_number=None)
        contract = test_data_factory.create_contract(
            test_session, provider=provider, status=ContractStatus.SENT)
        invoice = contract_invoice(test_session, contract)

        assert invoice.account_snapshot is None


def contract_invoice(session, contract, invoice_number=1):
    return RecordStore(session).find_invoice(contract.id, invoice_number)
