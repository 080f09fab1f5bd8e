from typing import Any, Dict, List, Optional, Protocol


class AnalyticalStore(Protocol):
    async def execute(self, query: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        ...

    async def execute_text(self, query: str) -> str:
        ...

    async def close(self) -> None:
        ...
