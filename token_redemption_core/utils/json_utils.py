import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any


class EnhancedJSONEncoder(json.JSONEncoder):
    def default(self, obj):
        if isinstance(obj, Decimal):
            return float(obj)
        elif isinstance(obj, (datetime, date)):
            return obj.isoformat()
        # Pydantic models
        elif hasattr(obj, "model_dump"):
            return obj.model_dump(mode="json")
        elif isinstance(obj, BaseException):
            return f"{type(obj).__name__}: {obj}"
        return super().default(obj)


def dumps(obj: Any, **kwargs) -> str:
    """JSON dumps with Decimal, datetime and pydantic support."""
    return json.dumps(obj, cls=EnhancedJSONEncoder, **kwargs)
