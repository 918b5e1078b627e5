"""
Investors Module

Investor records and their portfolio-level aggregates. Aggregates are
recomputed from the investor's investments rather than incremented, so a
corrected or replayed payment cannot push them out of step.
"""

import re
import threading
from decimal import Decimal
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from enum import Enum

from .errors import DuplicateRecord, InvalidField, NotFound
from .rate_math import ZERO, HUNDRED, round2
from .storage import RecordLocks, StorageInterface, StorageRecord, utc_now
from .timeline import ActivityTimeline, TimelineEventType


EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[A-Za-z]{2,}$")
PHONE_PATTERN = re.compile(r"^\+?[0-9][0-9 \-]{6,18}[0-9]$")
MAX_NAME_LENGTH = 100


class InvestorStatus(Enum):
    """Investor account states"""
    ACTIVE = "active"
    INACTIVE = "inactive"
    BLOCKED = "blocked"


class RiskProfile(Enum):
    CONSERVATIVE = "conservative"
    MODERATE = "moderate"
    AGGRESSIVE = "aggressive"


@dataclass
class Investor(StorageRecord):
    """Investor with portfolio aggregates"""
    name: str
    email: str
    phone: Optional[str] = None
    address: Dict[str, str] = field(default_factory=dict)
    status: InvestorStatus = InvestorStatus.ACTIVE
    risk_profile: RiskProfile = RiskProfile.MODERATE
    notes: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    total_investment: Decimal = ZERO
    total_returns: Decimal = ZERO
    active_investments: int = 0

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise InvalidField("Investor name is required", field="name", constraint="non-empty")
        if len(self.name) > MAX_NAME_LENGTH:
            raise InvalidField(
                f"Investor name cannot exceed {MAX_NAME_LENGTH} characters",
                field="name",
                constraint=f"length <= {MAX_NAME_LENGTH}"
            )
        self.email = (self.email or "").strip().lower()
        if not EMAIL_PATTERN.match(self.email):
            raise InvalidField(f"Invalid email address: {self.email}", field="email", constraint="valid email")
        if self.phone and not PHONE_PATTERN.match(self.phone):
            raise InvalidField(f"Invalid phone number: {self.phone}", field="phone", constraint="valid phone")

    @property
    def is_active(self) -> bool:
        return self.status == InvestorStatus.ACTIVE

    @property
    def roi_percent(self) -> Decimal:
        """Returns received as a percentage of the amount invested"""
        if self.total_investment == ZERO:
            return ZERO
        return round2(self.total_returns / self.total_investment * HUNDRED)

    def to_dict(self) -> Dict[str, Any]:
        result = self.base_dict()
        result.update({
            'name': self.name,
            'email': self.email,
            'phone': self.phone,
            'address': dict(self.address),
            'status': self.status.value,
            'risk_profile': self.risk_profile.value,
            'notes': self.notes,
            'tags': list(self.tags),
            'total_investment': str(self.total_investment),
            'total_returns': str(self.total_returns),
            'active_investments': self.active_investments
        })
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Investor':
        return cls(
            id=data['id'],
            **cls.parse_timestamps(data),
            name=data['name'],
            email=data['email'],
            phone=data.get('phone'),
            address=dict(data.get('address') or {}),
            status=InvestorStatus(data.get('status', 'active')),
            risk_profile=RiskProfile(data.get('risk_profile', 'moderate')),
            notes=data.get('notes'),
            tags=list(data.get('tags') or []),
            total_investment=Decimal(data.get('total_investment', '0')),
            total_returns=Decimal(data.get('total_returns', '0')),
            active_investments=int(data.get('active_investments', 0))
        )


class InvestorManager:
    """Manager class for investors"""

    def __init__(self, storage: StorageInterface, timeline: ActivityTimeline):
        self.storage = storage
        self.timeline = timeline
        self.table_name = "investors"
        self._create_lock = threading.Lock()
        self._locks = RecordLocks()

    def create_investor(
        self,
        name: str,
        email: str,
        phone: Optional[str] = None,
        address: Optional[Dict[str, str]] = None,
        risk_profile: RiskProfile = RiskProfile.MODERATE,
        notes: Optional[str] = None,
        tags: Optional[List[str]] = None,
        user_id: Optional[str] = None
    ) -> Investor:
        """
        Create a new investor

        Raises:
            InvalidField: If name, email or phone is malformed
            DuplicateRecord: If the email is already registered
        """
        with self._create_lock:
            now = utc_now()
            investor = Investor(
                id=f"INV{self.storage.count(self.table_name) + 1:06d}",
                created_at=now,
                updated_at=now,
                name=name.strip(),
                email=email,
                phone=phone,
                address=dict(address or {}),
                risk_profile=risk_profile,
                notes=notes,
                tags=list(tags or [])
            )
            if self.get_investor_by_email(investor.email):
                raise DuplicateRecord(
                    f"Investor with email {investor.email} already exists",
                    field="email",
                    constraint="unique"
                )
            self.storage.save(self.table_name, investor.id, investor.to_dict())

        self.timeline.record(
            TimelineEventType.INVESTOR_CREATED,
            entity_type="investor",
            entity_id=investor.id,
            description=f"Investor {investor.name} created",
            metadata={'email': investor.email},
            user_id=user_id
        )
        return investor

    def get_investor(self, investor_id: str) -> Optional[Investor]:
        """Get investor by ID"""
        data = self.storage.load(self.table_name, investor_id)
        if data:
            return Investor.from_dict(data)
        return None

    def get_investor_or_raise(self, investor_id: str) -> Investor:
        investor = self.get_investor(investor_id)
        if investor is None:
            raise NotFound(f"Investor {investor_id} not found", field="investor_id")
        return investor

    def get_investor_by_email(self, email: str) -> Optional[Investor]:
        matches = self.storage.find(self.table_name, {'email': email.strip().lower()})
        if matches:
            return Investor.from_dict(matches[0])
        return None

    def list_investors(self, status: Optional[InvestorStatus] = None) -> List[Investor]:
        filters = {'status': status.value} if status else {}
        investors = [Investor.from_dict(data) for data in self.storage.find(self.table_name, filters)]
        investors.sort(key=lambda investor: investor.id)
        return investors

    def update_investor(self, investor_id: str, user_id: Optional[str] = None, **changes) -> Investor:
        """Update contact details, status, risk profile, notes or tags"""
        allowed = {'name', 'email', 'phone', 'address', 'status', 'risk_profile', 'notes', 'tags'}
        unknown = set(changes) - allowed
        if unknown:
            raise InvalidField(
                f"Cannot update investor fields: {', '.join(sorted(unknown))}",
                field=sorted(unknown)[0],
                constraint=f"one of {', '.join(sorted(allowed))}"
            )

        with self._locks.for_record(investor_id):
            investor = self.get_investor_or_raise(investor_id)
            data = investor.to_dict()
            for key, value in changes.items():
                if isinstance(value, Enum):
                    value = value.value
                data[key] = value
            data['updated_at'] = utc_now().isoformat()
            updated = Investor.from_dict(data)

            if updated.email != investor.email:
                existing = self.get_investor_by_email(updated.email)
                if existing and existing.id != investor_id:
                    raise DuplicateRecord(
                        f"Investor with email {updated.email} already exists",
                        field="email",
                        constraint="unique"
                    )

            self.storage.save(self.table_name, investor_id, updated.to_dict())

        self.timeline.record(
            TimelineEventType.INVESTOR_UPDATED,
            entity_type="investor",
            entity_id=investor_id,
            description=f"Investor {updated.name} updated",
            metadata={'changes': sorted(changes)},
            user_id=user_id
        )
        return updated

    def set_status(self, investor_id: str, status: InvestorStatus, user_id: Optional[str] = None) -> Investor:
        return self.update_investor(investor_id, user_id=user_id, status=status)

    def update_statistics(self, investor_id: str) -> Investor:
        """Recompute total invested, returns received and active count from the investor's investments"""
        with self._locks.for_record(investor_id):
            investor = self.get_investor_or_raise(investor_id)
            investments = self.storage.find("investments", {'investor_id': investor_id})

            investor.total_investment = sum((Decimal(data['principal_amount']) for data in investments), ZERO)
            investor.total_returns = sum((Decimal(data['total_paid_amount']) for data in investments), ZERO)
            investor.active_investments = sum(1 for data in investments if data['status'] == 'active')
            investor.touch()

            self.storage.save(self.table_name, investor_id, investor.to_dict())
            return investor
