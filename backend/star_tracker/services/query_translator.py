from loguru import logger

from .llm_client import LLMClient
from ..schemas import AIQueryResult

DECLINED = AIQueryResult(success=False, sql="", conditions=[])


def build_prompt(schema_ddl: str, utterance: str) -> str:
    return (
        "Convert the following natural language query to a SQL query.\n"
        "Analyze the user intent, extract the key conditions and generate a valid SQL query.\n"
        "Also provide a structured representation of the query conditions for program processing.\n\n"
        f"Natural language query: {utterance}\n"
        f"Database schema: {schema_ddl}\n"
        "Database: clickhouse\n\n"
        "## Notes\n"
        "1. Do not generate any explanations or comments.\n"
        "2. Return success=false if the user input is invalid or cannot be expressed over this schema.\n"
        "3. Only generate a single SELECT query related to the user input, never any unrelated statement.\n"
        "4. Only reference columns that exist in the schema above.\n"
        "5. The table keeps several versions of every row, so always read the latest version with FINAL:\n"
        "   SELECT ... FROM <table> FINAL WHERE <condition>\n"
        "6. Do not add ORDER BY, LIMIT or OFFSET unless the user explicitly asks for an ordering.\n"
    )


class QueryTranslator:
    """Turns an utterance into a candidate query, grounded in the live DDL.

    The model is an untrusted oracle: every failure collapses into
    ``success=False`` here and never reaches the caller as an exception.
    """

    def __init__(self, llm: LLMClient):
        self.llm = llm

    async def translate(self, schema_ddl: str, utterance: str) -> AIQueryResult:
        if not utterance.strip():
            return DECLINED
        prompt = build_prompt(schema_ddl, utterance)
        try:
            result = await self.llm.generate_structured(prompt, AIQueryResult)
        except Exception as exc:
            logger.warning(f"[NL translate] model call failed: {type(exc).__name__}: {exc}")
            return DECLINED

        if result.success and not result.sql.strip():
            logger.warning(f"[NL translate] model reported success without SQL for {utterance!r}")
            return DECLINED
        logger.info(
            f"[NL translate] utterance={utterance!r} success={result.success} "
            f"conditions={[c.model_dump() for c in result.conditions]}"
        )
        return result
