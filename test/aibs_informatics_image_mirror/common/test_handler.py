from dataclasses import dataclass
from test.aibs_informatics_image_mirror.base import LambdaHandlerTestCase, LambdaHandlerType

from aibs_informatics_core.models.base import IntegerField, SchemaModel, custom_field

from aibs_informatics_image_mirror.common.handler import LambdaHandler
from aibs_informatics_image_mirror.common.metrics import EnhancedMetrics


@dataclass
class NoResponse(SchemaModel):
    pass


@dataclass
class CounterRequest(SchemaModel):
    count: int = custom_field(mm_field=IntegerField())


@dataclass
class CounterResponse(SchemaModel):
    count: int = custom_field(mm_field=IntegerField())


class CounterHandler_ReqResp(LambdaHandler[CounterRequest, CounterResponse]):
    def handle(self, request: CounterRequest) -> CounterResponse:
        self.log.info(f"Hey look the count is {request.count}")
        self.metrics.add_count_metric("Count", request.count)
        response = CounterResponse(request.count + 1)
        self.log.info(f"Hey look the count is now {response.count}")
        return response


class CounterHandler_ReqNoResp(LambdaHandler[CounterRequest, NoResponse]):
    def handle(self, request: CounterRequest) -> None:
        self.log.info(f"Hey look the count is {request.count}")


class LambdaHandlerTests(LambdaHandlerTestCase):
    @property
    def handler(self) -> LambdaHandlerType:
        return LambdaHandler.get_handler()

    def test__props__work(self):
        obj_handler = LambdaHandler()
        obj_handler.context
        self.assertIsInstance(obj_handler.metrics, EnhancedMetrics)
        self.assertIsNone(obj_handler.function_name)

    def test__handle__method_is_not_implemented(self):
        with self.assertRaises(NotImplementedError):
            LambdaHandler().handle({})


class CounterHandler_ReqNoResp_Tests(LambdaHandlerTestCase):
    @property
    def handler(self) -> LambdaHandlerType:
        return CounterHandler_ReqNoResp.get_handler()

    def test__handler__handles_valid_request_and_returns_no_response(self):
        self.assertHandles(self.handler, CounterRequest(1).to_dict(), None)

    def test__handler__handles_invalid_request_and_raises_error(self):
        with self.assertRaises(Exception):
            self.assertHandles(self.handler, {"counts": 1}, None)


class CounterHandler_ReqResp_Tests(LambdaHandlerTestCase):
    @property
    def handler(self) -> LambdaHandlerType:
        return CounterHandler_ReqResp.get_handler()

    def test__handler__handles_valid_request_and_returns_response(self):
        self.assertHandles(
            self.handler,
            CounterRequest(1).to_dict(),
            CounterResponse(2).to_dict(),
        )

    def test__handler__sets_function_name_from_context(self):
        obj_handler = CounterHandler_ReqResp()
        obj_handler.context = self.context
        self.assertEqual(obj_handler.function_name, self.__class__.__name__)
