"""
Canonical data model for the booking client.

The marketplace servers disagree on field names (``City.Name`` vs
``City.CityName``, ``ID`` vs ``Id``); every payload is validated into
these models at the component boundary so nothing downstream sees the
wire spelling.
"""

from enum import Enum
from typing import List, NamedTuple, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as SchemaError

from errors import TransportError, ValidationError


class City(BaseModel):
    """City an airport serves"""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(..., validation_alias=AliasChoices("name", "Name", "CityName"))
    state: str = Field(default="", validation_alias=AliasChoices("state", "State"))
    country: str = Field(default="", validation_alias=AliasChoices("country", "Country"))
    latitude: float = Field(default=0.0, validation_alias=AliasChoices("latitude", "Latitude"))
    longitude: float = Field(default=0.0, validation_alias=AliasChoices("longitude", "Longitude"))

    @field_validator("state", "country", mode="before")
    @classmethod
    def _none_to_blank(cls, v):
        return v or ""

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def _none_to_zero(cls, v):
        return v or 0.0

    @property
    def label(self) -> str:
        return f"{self.name}-{self.state}" if self.state else self.name


class Airport(BaseModel):
    """Airport entity, immutable once fetched"""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(default="", validation_alias=AliasChoices("id", "ID", "Id"))
    name: str = Field(..., validation_alias=AliasChoices("name", "Name"))
    city: City = Field(..., validation_alias=AliasChoices("city", "City"))

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, v):
        return "" if v is None else str(v)

    @property
    def key(self) -> str:
        """Identifier, or the name for servers that do not send one."""
        return self.id or self.name


class Company(str, Enum):
    """Operating carriers; anything unknown is shown as rumos"""
    BOREAL = "boreal"
    GIRO = "giro"
    RUMOS = "rumos"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            lowered = value.strip().lower()
            for member in cls:
                if member.value == lowered:
                    return member
        return cls.RUMOS


class Flight(BaseModel):
    """A sellable (or historical) flight between two airports"""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int = Field(..., validation_alias=AliasChoices("id", "ID", "Id"))
    company: Company = Field(default=Company.RUMOS, validation_alias=AliasChoices("company", "Company"))
    origin: Airport = Field(..., validation_alias=AliasChoices("origin", "OriginAirport"))
    destination: Airport = Field(..., validation_alias=AliasChoices("destination", "DestinationAirport"))
    seats: int = Field(default=0, ge=0, validation_alias=AliasChoices("seats", "Seats"))
    price: int = Field(default=0, ge=0, validation_alias=AliasChoices("price", "Price"))

    @field_validator("company", mode="before")
    @classmethod
    def _company_fallback(cls, v):
        return Company(v) if v is not None else Company.RUMOS

    @field_validator("seats", mode="before")
    @classmethod
    def _clamp_seats(cls, v):
        # Servers decrement without a floor
        return max(int(v or 0), 0)

    @property
    def sellable(self) -> bool:
        return self.seats > 0


class HoldState(str, Enum):
    """Lifecycle of a cart entry"""
    PENDING = "pending"
    CONFIRMED_REMOTE = "confirmed_remote"
    PURCHASING = "purchasing"
    FAILED = "failed"


_TRANSITIONS = {
    HoldState.PENDING: {HoldState.CONFIRMED_REMOTE, HoldState.FAILED},
    HoldState.CONFIRMED_REMOTE: {HoldState.PURCHASING},
    HoldState.PURCHASING: {HoldState.FAILED},
    HoldState.FAILED: {HoldState.CONFIRMED_REMOTE, HoldState.PURCHASING},
}

# States counted by the cart badge
COUNTED_STATES = frozenset({HoldState.PENDING, HoldState.CONFIRMED_REMOTE, HoldState.FAILED})


class Hold(BaseModel):
    """Cart entry for one flight. Owned and mutated by CartManager only."""

    flight_id: int
    position: int
    state: HoldState = HoldState.PENDING
    remote_confirmed: bool = False
    last_error: Optional[str] = None

    def advance(self, state: HoldState, error: Optional[Exception] = None) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise ValidationError(
                f"hold for flight {self.flight_id} cannot go from "
                f"{self.state.value} to {state.value}"
            )
        self.state = state
        if state is HoldState.CONFIRMED_REMOTE:
            self.remote_confirmed = True
        self.last_error = str(error) if error is not None else None

    @property
    def purchasable(self) -> bool:
        return self.state in (HoldState.CONFIRMED_REMOTE, HoldState.FAILED)


class HoldView(NamedTuple):
    """A hold plus the last known flight details (None when unknown)"""
    hold: Hold
    flight: Optional[Flight]


class Ticket(BaseModel):
    """A confirmed purchase"""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: Optional[int] = Field(default=None, validation_alias=AliasChoices("id", "ID", "Id", "TicketId"))
    flight_id: Optional[int] = Field(default=None, validation_alias=AliasChoices("flight_id", "FlightId"))
    origin: Optional[City] = Field(
        default=None, validation_alias=AliasChoices("origin", "Src", "FlightSrcCity"))
    destination: Optional[City] = Field(
        default=None, validation_alias=AliasChoices("destination", "Dest", "FlightDestCity"))
    company: Company = Field(default=Company.RUMOS, validation_alias=AliasChoices("company", "Company"))

    @field_validator("origin", "destination", mode="before")
    @classmethod
    def _city_from_name(cls, v):
        if isinstance(v, str):
            return {"name": v}
        return v

    @field_validator("company", mode="before")
    @classmethod
    def _company_fallback(cls, v):
        return Company(v) if v is not None else Company.RUMOS

    @property
    def provisional(self) -> bool:
        """Recorded from a purchase response that carried no ticket id."""
        return self.id is None

    @property
    def route_label(self) -> str:
        src = self.origin.label if self.origin else "?"
        dest = self.destination.label if self.destination else "?"
        return f"{src}/{dest}"

    @classmethod
    def from_purchase(cls, flight_id: int, payload: Optional[dict],
                      flight: Optional[Flight] = None) -> "Ticket":
        """Build the local ticket for a successful buy-ticket call."""
        payload = payload or {}
        ticket_id = payload.get("Id") or payload.get("ID") or payload.get("TicketId")
        if ticket_id is None and isinstance(payload.get("Ticket"), dict):
            nested = payload["Ticket"]
            ticket_id = nested.get("Id") or nested.get("ID")
        try:
            ticket_id = int(ticket_id) if ticket_id is not None else None
        except (TypeError, ValueError):
            # The seat is bought either way; the server copy arrives on reload
            ticket_id = None
        return cls(
            id=ticket_id,
            flight_id=flight_id,
            origin=flight.origin.city if flight else None,
            destination=flight.destination.city if flight else None,
            company=flight.company if flight else Company.RUMOS,
        )


def parse_items(model, raw):
    """Validate a list of wire records; a malformed record is a TransportError."""
    if raw is not None and not isinstance(raw, list):
        raise TransportError(f"expected a list of {model.__name__} records")
    try:
        return [model.model_validate(item) for item in raw or []]
    except SchemaError as e:
        raise TransportError(f"malformed {model.__name__} in server response: "
                             f"{e.error_count()} errors") from e


def parse_flights(raw: Optional[List[dict]]) -> List[Flight]:
    """Validate a list of wire flights, keeping the first copy of each id."""
    flights = []
    seen = set()
    for flight in parse_items(Flight, raw):
        if flight.id in seen:
            continue
        seen.add(flight.id)
        flights.append(flight)
    return flights
