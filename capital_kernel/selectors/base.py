"""
Module: capital_kernel.selectors.base
Responsibility: Common parent of the read-side query classes.
Architecture position: Kernel > Selectors.  May import db/, domain/ and
    models/; never services/.

Selectors run queries on the caller's session and hand back DTOs or plain
values.  They never add, flush or commit, so a selector can be used inside
a service call without affecting its unit of work.
"""

from sqlalchemy.orm import Session


class BaseSelector:

    def __init__(self, session: Session):
        self.session = session
