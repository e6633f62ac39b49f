from datetime import datetime
from decimal import Decimal
from sqlalchemy.orm import declarative_base


class DictMixin:
    """
    Mixin providing JSON-ready dictionary serialization for storefront models.

    Money columns are rendered as two-decimal strings and timestamps as
    ISO-8601 so the result can be handed straight to ``jsonify``.
    """
    def to_dict(self):
        out = {}
        for c in self.__table__.columns:
            value = getattr(self, c.key)
            if isinstance(value, Decimal):
                value = f"{value:.2f}"
            elif isinstance(value, datetime):
                value = value.isoformat()
            out[c.name] = value
        return out


Base = declarative_base(cls=DictMixin)
