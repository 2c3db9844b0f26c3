from __future__ import annotations

import time
from typing import Dict

from buildheal.models import BuildEvent, BuildStatus

# Canned CI output for exercising the pipeline without a real CI provider.
MOCK_LOGS: Dict[str, str] = {
    "lint": """
npm run lint

> app@1.0.0 lint
> eslint .

/src/components/Dashboard.js
  12:5  error  'useState' is not defined  no-undef
  15:3  error  Missing semicolon          semi
  23:1  error  Unexpected console statement  no-console

✖ 3 problems (3 errors, 0 warnings)
  2 errors and 0 warnings potentially fixable with the `--fix` option.
""",
    "dependency": """
npm run build

Error: Cannot find module 'express'
Require stack:
- /app/backend/src/server.js
- /app/backend/index.js
    at Function.Module._resolveFilename (internal/modules/cjs/loader.js:815:15)
    at Function.Module._load (internal/modules/cjs/loader.js:667:27)
""",
    "test": """
npm test

FAIL  src/utils/helper.test.js
  ● calculateScore › should return correct score

    expect(received).toBe(expected) // Object.is equality

    Expected: 85
    Received: 80

      12 |     const result = calculateScore(data);
      13 |     expect(result).toBe(85);
         |                    ^
      14 |   });

AssertionError: 1 test failed in src/utils/helper.test.js

Test Suites: 1 failed, 5 passed, 6 total
Tests:       1 failed, 12 passed, 13 total
""",
    "syntax": """
npm run build

/src/app.js:45
  const result = await fetchData()
                 ^^^^^

SyntaxError: Unexpected token 'await'
    at Module._compile (internal/modules/cjs/loader.js:723:23)
    at Object.Module._extensions..js (internal/modules/cjs/loader.js:789:10)
""",
}


def simulated_failure_event(error_type: str = "lint", *, repo_name: str | None = None) -> BuildEvent:
    """Unknown error types fall back to the lint scenario."""
    logs = MOCK_LOGS.get((error_type or "").strip().lower(), MOCK_LOGS["lint"])
    return BuildEvent(
        build_id=f"build_{int(time.time() * 1000)}_{time.perf_counter_ns() % 100_000:05d}",
        repo_name=repo_name,
        status=BuildStatus.failure,
        logs=logs,
        branch="main",
        commit="abc123",
    )
