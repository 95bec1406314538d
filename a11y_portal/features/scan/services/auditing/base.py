from abc import ABC, abstractmethod

from a11y_portal.features.scan.schemas.audit import PageResult


class PageAuditor(ABC):
    """
    One audit engine, applied to one URL at a time.

    `setup` is the capability check: raising AuditorUnavailableError there
    fails the whole scan. `audit` raises AuditError for a single URL, which
    the runner records and moves past.
    """

    engine: str = ""

    def setup(self) -> None:
        pass

    @abstractmethod
    def audit(self, url: str) -> PageResult: ...

    def teardown(self) -> None:
        pass

    def __enter__(self) -> "PageAuditor":
        self.setup()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.teardown()
