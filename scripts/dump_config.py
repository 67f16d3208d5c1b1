import asyncio
import json

from dav_panel.cli import resolve_invoker
from dav_panel.config.settings import Settings
from dav_panel.rpc import BackendClient


async def main() -> None:
    settings = Settings()
    client = BackendClient(resolve_invoker(settings))
    config = await client.get_config()
    status = await client.check_server_status()
    print(json.dumps({"config": config.log_fields(), "status": status.value}, indent=2))


if __name__ == "__main__":
    asyncio.run(main())
