import re
import pytest
from unittest.mock import AsyncMock, patch

from app.exceptions import ShareCodeExhaustedError
from app.models import SharedQuiz
from app.services.share_code_service import ShareCodeGenerator

SHARE_CODE_RE = re.compile(r"^[A-Z0-9]{8}$")


class TestShareCodeGenerator:
    async def test_generates_uppercase_alphanumeric_code(self, db):
        generator = ShareCodeGenerator()

        codes = {await generator.generate(db) for _ in range(20)}

        assert all(SHARE_CODE_RE.match(code) for code in codes)
        assert len(codes) > 1

    async def test_skips_codes_already_taken(self, db):
        db.add(SharedQuiz(creator_user_id=1, title="Taken", share_code="TAKEN000"))
        db.commit()
        generator = ShareCodeGenerator()

        with patch.object(generator, "_draw_code", side_effect=["TAKEN000", "FREE0000"]):
            code = await generator.generate(db)

        assert code == "FREE0000"

    async def test_gives_up_after_max_attempts(self, db):
        generator = ShareCodeGenerator(max_attempts=10)
        code_exists = AsyncMock(return_value=True)

        with patch.object(ShareCodeGenerator, "_code_exists", new=code_exists):
            with pytest.raises(ShareCodeExhaustedError) as exc_info:
                await generator.generate(db)

        assert code_exists.await_count == 10
        assert exc_info.value.context["attempts"] == 10

    async def test_custom_length(self, db):
        code = await ShareCodeGenerator(code_length=12).generate(db)
        assert re.match(r"^[A-Z0-9]{12}$", code)
