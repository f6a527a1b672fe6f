from typing import Any, Dict, Generic, Iterable, List, Mapping, Optional, Tuple, Type, TypeVar

import pydantic
from loguru import logger

from awx_job_client.errors import ResourceNotFoundError, TransportError, ValidationError
from awx_job_client.models import APIResponse, ListResponse, WorkflowJobTemplate
from awx_job_client.transport import Transport

ResourceT = TypeVar("ResourceT", bound=pydantic.BaseModel)

WORKFLOW_JOB_TEMPLATE_FIELDS = ("name", "job_type", "inventory", "project")


def validate_params(data: Mapping[str, Any], mandatory_fields: Iterable[str]) -> List[str]:
    """Returns the mandatory fields absent from data, in declaration order"""
    return [name for name in mandatory_fields if name not in data]


class ResourceService(Generic[ResourceT]):
    """CRUD over one named AWX resource collection"""

    def __init__(
        self,
        transport: Transport,
        collection: str,
        model: Type[ResourceT],
        mandatory_fields: Iterable[str] = (),
    ):
        self.transport = transport
        self.collection = collection
        self.model = model
        self.mandatory_fields = tuple(mandatory_fields)
        self.logger = logger

    @property
    def endpoint(self) -> str:
        return f"/api/v2/{self.collection}/"

    def _item_endpoint(self, resource_id: int) -> str:
        return f"{self.endpoint}{resource_id}/"

    def _parse(self, response: APIResponse, data: Any = None) -> ResourceT:
        payload = response.data if data is None else data
        try:
            return self.model.model_validate(payload)
        except pydantic.ValidationError as e:
            raise TransportError(
                f"Unreadable {self.collection} record from {response.url}"
            ) from e

    async def list(
        self, params: Optional[Mapping[str, Any]] = None
    ) -> Tuple[List[ResourceT], ListResponse]:
        response = await self.transport.get_json(self.endpoint, params=params)
        self.transport.check_response(response)
        try:
            page = ListResponse.model_validate(response.data)
        except pydantic.ValidationError as e:
            raise TransportError(f"Unreadable listing from {response.url}") from e
        return [self._parse(response, item) for item in page.results], page

    async def get_by_name(self, name: str) -> ResourceT:
        items, page = await self.list(params={"name": name})
        if page.count == 0 or not items:
            raise ResourceNotFoundError(self.collection, name)
        return items[0]

    async def create(
        self, data: Dict[str, Any], params: Optional[Mapping[str, Any]] = None
    ) -> ResourceT:
        missing = validate_params(data, self.mandatory_fields)
        if missing:
            raise ValidationError(missing)

        response = await self.transport.post_json(self.endpoint, body=data, params=params)
        self.transport.check_response(response)
        created = self._parse(response)
        self.logger.info(f"Created {self.collection} {getattr(created, 'id', '?')}")
        return created

    async def update(
        self,
        resource_id: int,
        data: Dict[str, Any],
        params: Optional[Mapping[str, Any]] = None,
    ) -> ResourceT:
        response = await self.transport.patch_json(
            self._item_endpoint(resource_id), body=data, params=params
        )
        self.transport.check_response(response)
        return self._parse(response)

    async def delete(self, resource_id: int) -> Optional[ResourceT]:
        response = await self.transport.delete(self._item_endpoint(resource_id))
        self.transport.check_response(response)
        self.logger.info(f"Deleted {self.collection} {resource_id}")
        # AWX answers 204 without a body
        if not response.data:
            return None
        return self._parse(response)


def workflow_job_templates(transport: Transport) -> ResourceService[WorkflowJobTemplate]:
    return ResourceService(
        transport,
        "workflow_job_templates",
        WorkflowJobTemplate,
        mandatory_fields=WORKFLOW_JOB_TEMPLATE_FIELDS,
    )
