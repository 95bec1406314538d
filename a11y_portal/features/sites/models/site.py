from sqlalchemy import Column, DateTime, Integer, String

from a11y_portal.platform.db.base import BaseModel


class Site(BaseModel):
    """
    Tracked website. Managed by the site CRUD layer; the scan engine only
    reads the sitemap and writes back the latest scores.
    """
    __tablename__ = "sites"

    url = Column(String(2048), nullable=False)
    title = Column(String(255), nullable=True)
    sitemap_url = Column(String(2048), nullable=True)

    axe_score = Column(Integer, nullable=True)
    axe_last_updated = Column(DateTime(timezone=True), nullable=True)
    lighthouse_score = Column(Integer, nullable=True)
    lighthouse_last_updated = Column(DateTime(timezone=True), nullable=True)

    @property
    def display_name(self) -> str:
        return self.title or self.url
