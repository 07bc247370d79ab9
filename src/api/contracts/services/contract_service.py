from datetime import date
from decimal import Decimal
from typing import List, Optional
from fastapi.logger import logger
from sqlmodel import Session, select
from src.api.common.constants.billing import (
    CONTRACT_STATUS_TRANSITIONS, ContractStatus, ExtensionKind, PricingMode, Weekday, WEEKDAY_ORDER)
from src.api.common.errors import InvalidStateError, NotFoundError
from src.api.common.utils.datetime import (
    get_current_datetime, get_local_date, get_local_datetime, normalize_datetime)
from src.api.common.utils.encryption import encrypt_data
from src.api.common.utils.money import to_decimal
from src.api.billing.services.billing_trigger import BillingTrigger
from src.api.billing.services.record_store import RecordStore
from src.api.clients.models.client import Client
from src.api.contracts.models.contract import Contract, ContractExtension
from src.api.contracts.schemas.contract import ContractCreate, ContractExtend, ContractStatusUpdate
from src.api.contracts.schemas.policy import AccountInfo, PolicySnapshot
from src.api.invoices.services.period_calculator import unprocessed_dates
from src.api.notifications.utils.error_logger import log_delivery_error
from src.api.providers.models.provider import Provider


class ContractService:
    """Service class for the contract lifecycle and extension chain."""

    def __init__(self, db: Session):
        self.db = db
        self.store = RecordStore(db)

    def create_contract(self, provider_id: int, contract_data: ContractCreate) -> Contract:
        """
        Create a draft contract and capture its policy snapshot.

        Billing mode and absence policy fall back to the provider defaults.
        """
        provider = self.db.get(Provider, provider_id)
        if not provider:
            raise NotFoundError(f"Provider {provider_id} not found")
        client = self.db.get(Client, contract_data.client_id)
        if not client or client.provider_id != provider_id:
            raise NotFoundError(f"Client {contract_data.client_id} not found")

        billing_mode = contract_data.billing_mode or provider.default_billing_mode
        absence_policy = contract_data.absence_policy or provider.default_absence_policy

        account_override = None
        if contract_data.account_override is not None:
            account_override = AccountInfo(
                bank_name=contract_data.account_override.bank_name,
                account_holder=contract_data.account_override.account_holder,
                encrypted_account_number=encrypt_data(contract_data.account_override.account_number),
            )

        policy = PolicySnapshot(
            billing_mode=billing_mode,
            absence_policy=absence_policy,
            pricing_mode=contract_data.pricing_mode,
            base_price=contract_data.base_price,
            total_sessions=contract_data.total_sessions,
            per_session_amount=contract_data.per_session_amount,
            planned_count_override=contract_data.planned_count_override,
            weekdays=contract_data.weekdays,
            account_override=account_override,
            captured_at=get_current_datetime(),
        )

        contract = Contract(
            provider_id=provider_id,
            client_id=client.id,
            subject=contract_data.subject,
            billing_mode=billing_mode,
            absence_policy=absence_policy,
            pricing_mode=contract_data.pricing_mode,
            base_price=contract_data.base_price,
            billing_day=contract_data.billing_day,
            weekdays=[Weekday(day).value for day in contract_data.weekdays],
            start_date=contract_data.start_date,
            end_date=contract_data.end_date,
            total_sessions=contract_data.total_sessions,
            total_amount=(contract_data.base_price
                          if contract_data.pricing_mode == PricingMode.AMOUNT else None),
            teacher_signature=contract_data.teacher_signature,
            client_signature=contract_data.client_signature,
            policy_snapshot=policy.to_json(),
        )

        self.db.add(contract)
        self.db.commit()
        self.db.refresh(contract)
        logger.info(f"Contract {contract.id} created for client {client.id} ({contract.pricing_mode.value})")
        return contract

    def get_contract(self, provider_id: int, contract_id: int) -> Optional[Contract]:
        """Get a contract by ID"""
        contract = self.db.get(Contract, contract_id)
        if not contract or contract.provider_id != provider_id:
            return None
        return contract

    def get_contracts(
        self,
        provider_id: int,
        client_id: Optional[int] = None,
        status: Optional[ContractStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Contract]:
        """Get a list of contracts, newest first"""
        query = select(Contract).where(Contract.provider_id == provider_id)
        if client_id is not None:
            query = query.where(Contract.client_id == client_id)
        if status is not None:
            query = query.where(Contract.status == status)
        query = query.order_by(Contract.created_at.desc(), Contract.id.desc())
        return list(self.db.exec(query.offset(skip).limit(limit)).all())

    def get_today_contracts(self, provider_id: int, today: Optional[date] = None) -> List[Contract]:
        """Active contracts with a class scheduled today"""
        today = today or get_local_date()
        weekday = WEEKDAY_ORDER[today.weekday()]
        contracts = self.db.exec(
            select(Contract)
            .join(Client, Client.id == Contract.client_id)
            .where(
                Contract.provider_id == provider_id,
                Contract.status.in_([ContractStatus.CONFIRMED, ContractStatus.SENT]),
                Client.is_active == True,  # noqa: E712
            )
        ).all()
        return [
            contract for contract in contracts
            if weekday in contract.weekday_set
            and (contract.start_date is None or contract.start_date <= today)
            and (contract.end_date is None or today <= contract.end_date)
        ]

    def update_status(
        self,
        provider_id: int,
        contract_id: int,
        status_data: ContractStatusUpdate,
        today: Optional[date] = None,
    ) -> Contract:
        """
        Move a contract forward: draft -> confirmed -> sent.

        Confirming requires both signatures. Sending creates the first
        invoice; a billing failure is logged and does not undo the status
        change.
        """
        contract = self.store.find_contract(contract_id, provider_id)
        current = ContractStatus(contract.status)
        target = status_data.status

        if status_data.teacher_signature is not None:
            contract.teacher_signature = status_data.teacher_signature
        if status_data.client_signature is not None:
            contract.client_signature = status_data.client_signature

        if target != current:
            if target not in CONTRACT_STATUS_TRANSITIONS[current]:
                self.db.rollback()
                raise InvalidStateError(
                    f"Contract {contract_id} cannot move from {current.value} to {target.value}")
            if target == ContractStatus.CONFIRMED and not (
                    contract.teacher_signature and contract.client_signature):
                self.db.rollback()
                raise InvalidStateError("Both signatures are required to confirm a contract")

            contract.status = target
            if target == ContractStatus.CONFIRMED:
                contract.confirmed_at = get_current_datetime()
            elif target == ContractStatus.SENT:
                contract.sent_at = get_current_datetime()

        contract.touch()
        self.db.add(contract)
        self.db.commit()
        self.db.refresh(contract)
        logger.info(f"Contract {contract.id} status {current.value} -> {contract.status.value}")

        if target == ContractStatus.SENT and current != ContractStatus.SENT:
            try:
                BillingTrigger(self.db).on_contract_sent(contract, today)
            except Exception as e:
                self.db.rollback()
                logger.error(f"Failed to create first invoice for contract {contract.id}: {str(e)}")
                log_delivery_error(
                    self.db,
                    channel="billing",
                    operation_type="on_contract_sent",
                    entity_type="contract",
                    entity_id=contract.id,
                    error_message=str(e),
                    contract_id=contract.id,
                )
            self.db.refresh(contract)
        return contract

    def extend_contract(
        self,
        provider_id: int,
        contract_id: int,
        extend_data: ContractExtend,
        today: Optional[date] = None,
    ) -> ContractExtension:
        """
        Append an extension to the contract's chain.

        Sessions extend session passes, amounts extend amount passes and a
        new end date extends any contract with an end date. Everything else
        is rejected before writing.
        """
        contract = self.store.find_contract(contract_id, provider_id)
        if contract.status == ContractStatus.DRAFT:
            raise InvalidStateError("A draft contract cannot be extended")

        extensions = self.store.find_extensions(contract.id)
        extended_at = normalize_datetime(extend_data.extended_at) or get_local_datetime()
        if extensions and extended_at < extensions[-1].extended_at:
            # The chain never goes back in time
            extended_at = extensions[-1].extended_at

        record = {
            "extended_at": extended_at,
            "extended_by": extend_data.extended_by,
            "extension_price": extend_data.extension_price,
        }

        if extend_data.added_sessions:
            if contract.pricing_mode != PricingMode.SESSIONS:
                raise InvalidStateError("Only session contracts can be extended by sessions")
            previous_total = contract.total_sessions or 0
            new_total = previous_total + extend_data.added_sessions
            record.update(
                kind=ExtensionKind.SESSIONS,
                added_sessions=extend_data.added_sessions,
                previous_total=Decimal(previous_total),
                new_total=Decimal(new_total),
            )
            contract.total_sessions = new_total
        elif extend_data.added_amount:
            if contract.pricing_mode != PricingMode.AMOUNT:
                raise InvalidStateError("Only amount contracts can be extended by amount")
            previous_total = to_decimal(contract.total_amount)
            new_total = previous_total + extend_data.added_amount
            record.update(
                kind=ExtensionKind.AMOUNT,
                added_amount=extend_data.added_amount,
                previous_total=previous_total,
                new_total=new_total,
            )
            contract.total_amount = new_total
        elif extend_data.new_end_date:
            if contract.end_date is None:
                raise InvalidStateError("Contract has no end date to extend")
            if extend_data.new_end_date <= contract.end_date:
                raise InvalidStateError("New end date must be after the current end date")
            record.update(
                kind=ExtensionKind.PERIOD,
                previous_end_date=contract.end_date,
                new_end_date=extend_data.new_end_date,
            )
            contract.end_date = extend_data.new_end_date
        else:
            raise InvalidStateError("Extension requires added_sessions, added_amount or new_end_date")

        extension = self.store.append_extension(contract.id, record)
        contract.touch()
        self.db.add(contract)
        self.db.commit()
        self.db.refresh(extension)
        logger.info(
            f"Contract {contract.id} extended ({extension.kind.value}) at {extension.extended_at}, "
            f"sequence {extension.sequence}")

        if contract.status == ContractStatus.SENT:
            try:
                BillingTrigger(self.db).on_contract_extended(contract, extension, today)
            except Exception as e:
                self.db.rollback()
                logger.error(f"Failed to bill extension {extension.id} of contract {contract.id}: {str(e)}")
                log_delivery_error(
                    self.db,
                    channel="billing",
                    operation_type="on_contract_extended",
                    entity_type="contract",
                    entity_id=contract.id,
                    error_message=str(e),
                    contract_id=contract.id,
                )
        return extension

    def get_unprocessed_dates(
        self,
        provider_id: int,
        contract_id: int,
        start: date,
        end: date,
    ) -> List[date]:
        """Scheduled class dates in [start, end] with no attendance recorded"""
        contract = self.store.find_contract(contract_id, provider_id)
        if contract.start_date and start < contract.start_date:
            start = contract.start_date
        if contract.end_date and end > contract.end_date:
            end = contract.end_date
        recorded = {record.occurred_at.date() for record in self.store.find_attendance(contract.id)}
        return unprocessed_dates(contract.weekdays, start, end, recorded)
