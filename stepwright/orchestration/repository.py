"""
In-process test case repository.
"""

import json
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from stepwright.core.interfaces import TestCaseRepository
from stepwright.core.types import TestCase


class InMemoryTestCaseRepository(TestCaseRepository):
    """Dictionary-backed store, mostly for the CLI and tests."""

    def __init__(self, test_cases: Optional[Iterable[TestCase]] = None):
        self._test_cases: Dict[str, TestCase] = {}
        for test_case in test_cases or []:
            self.add(test_case)

    def add(self, test_case: TestCase) -> TestCase:
        self._test_cases[test_case.id] = test_case
        return test_case

    def remove(self, test_case_id: str) -> bool:
        return self._test_cases.pop(test_case_id, None) is not None

    async def get(self, test_case_id: str) -> Optional[TestCase]:
        return self._test_cases.get(test_case_id)

    def all(self) -> List[TestCase]:
        return list(self._test_cases.values())

    def __len__(self) -> int:
        return len(self._test_cases)


def load_test_case(path: Union[str, Path]) -> TestCase:
    """Read a ``{"id", "name", "steps"}`` JSON document."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return TestCase.model_validate(data)
