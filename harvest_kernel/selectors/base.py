"""
Module: harvest_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors.
    Selectors are the read side of the kernel: batch listings, batch detail,
    eligible derivation sources and free-unit listings.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    the pure domain (for DTOs and enums).  MUST NOT import from services/ or
    outer layers.

Invariants enforced:
    - Read-only access: selectors MUST NOT call session.add(),
      session.delete(), session.commit() or session.flush().
    - DTO return convention: selectors return frozen views from
      ``harvest_kernel.domain.dtos``, never ORM instances.
    - Session ownership: the caller owns the session and its transaction.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseSelector(ABC):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only
        queries, and return views.  They MUST NOT mutate any data.
    """

    def __init__(self, session: Session):
        self.session = session
