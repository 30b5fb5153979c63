"""Run TenantGate server: python3 -m tenantgate"""

import uvicorn

from tenantgate.config import settings


def main() -> None:
    uvicorn.run("tenantgate.api.app:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
