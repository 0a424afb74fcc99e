"""CancellationToken -- 调用方主动终止流的信号

基于 asyncio.Event；StreamTransport 在发起请求前检查，并让等待响应头与每次读取都与之竞争，
因此即使后端迟迟不响应或长时间不发数据也能及时释放连接。
"""

import asyncio


class CancellationToken:
    """一次性取消信号，cancel() 之后不可恢复"""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()
