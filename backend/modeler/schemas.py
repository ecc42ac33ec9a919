from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Dict, Any, List


class RequestModel(BaseModel):
    """Accepts both the snake_case field names and the camelCase aliases the frontend sends."""
    model_config = ConfigDict(populate_by_name=True)

    def values(self) -> Dict[str, Any]:
        """Only the fields the caller actually sent, by field name."""
        return self.model_dump(exclude_unset=True)


# ============================
# Auth
# ============================

class SignUpRequest(RequestModel):
    email: str
    password: str
    full_name: Optional[str] = Field(None, alias="fullName")


class SignInRequest(RequestModel):
    email: str
    password: str


class SuperuserRequest(RequestModel):
    is_superuser: bool = Field(alias="isSuperuser")


# ============================
# Projects
# ============================

class ProjectCreate(RequestModel):
    name: Optional[str] = None
    description: Optional[str] = None


class ProjectUpdate(RequestModel):
    name: Optional[str] = None
    description: Optional[str] = None


class MemberCreate(RequestModel):
    email: str
    role: str = "viewer"


class MemberUpdate(RequestModel):
    role: str


class DataModelCreate(RequestModel):
    name: Optional[str] = None
    description: Optional[str] = None
    version: Optional[str] = None


class DataModelUpdate(DataModelCreate):
    pass


# ============================
# Model graph
# ============================

class EntityCreate(RequestModel):
    name: Optional[str] = None
    description: Optional[str] = None
    data_model_id: Optional[str] = Field(None, alias="dataModelId")
    entity_type: str = Field("standard", alias="entityType")
    join_entities: Optional[List[str]] = Field(None, alias="joinEntities")
    referential_id: Optional[str] = Field(None, alias="referentialId")
    position_x: Optional[float] = Field(None, alias="positionX")
    position_y: Optional[float] = Field(None, alias="positionY")
    primary_key_type: Optional[str] = Field("uuid", alias="primaryKeyType")
    primary_key_name: Optional[str] = Field("id", alias="primaryKeyName")
    reference_entity_id: Optional[str] = Field(None, alias="referenceEntityId")
    reference_entity_name: Optional[str] = Field(None, alias="referenceEntityName")


class EntityUpdate(RequestModel):
    name: Optional[str] = None
    description: Optional[str] = None
    referential_id: Optional[str] = Field(None, alias="referentialId")
    position_x: Optional[float] = Field(None, alias="positionX")
    position_y: Optional[float] = Field(None, alias="positionY")
    entity_type: Optional[str] = Field(None, alias="entityType")


class AttributeFields(RequestModel):
    name: Optional[str] = None
    description: Optional[str] = None
    data_type: Optional[str] = Field(None, alias="dataType")
    length: Optional[int] = None
    default_value: Optional[str] = Field(None, alias="defaultValue")
    is_primary_key: Optional[bool] = Field(None, alias="isPrimaryKey")
    is_foreign_key: Optional[bool] = Field(None, alias="isForeignKey")
    is_unique: Optional[bool] = Field(None, alias="isUnique")
    is_required: Optional[bool] = Field(None, alias="isRequired")
    is_calculated: Optional[bool] = Field(None, alias="isCalculated")
    calculation_rule: Optional[str] = Field(None, alias="calculationRule")
    referenced_entity_id: Optional[str] = Field(None, alias="referencedEntityId")


class AttributeCreate(AttributeFields):
    entity_id: Optional[str] = Field(None, alias="entityId")


class AttributeItem(AttributeFields):
    """One element of a bulk replace; no id means insert."""
    id: Optional[str] = None


class BulkAttributesRequest(RequestModel):
    attributes: Any = None


class RelationshipFields(RequestModel):
    source_entity_id: Optional[str] = Field(None, alias="sourceEntityId")
    target_entity_id: Optional[str] = Field(None, alias="targetEntityId")
    source_attribute_id: Optional[str] = Field(None, alias="sourceAttributeId")
    target_attribute_id: Optional[str] = Field(None, alias="targetAttributeId")
    relationship_type: Optional[str] = Field(None, alias="relationshipType")
    source_cardinality: Optional[str] = Field(None, alias="sourceCardinality")
    target_cardinality: Optional[str] = Field(None, alias="targetCardinality")
    name: Optional[str] = None
    description: Optional[str] = None


class RelationshipCreate(RelationshipFields):
    data_model_id: Optional[str] = Field(None, alias="dataModelId")


class ReferentialCreate(RequestModel):
    data_model_id: Optional[str] = Field(None, alias="dataModelId")
    name: Optional[str] = None
    description: Optional[str] = None
    color: Optional[str] = None
    entity_ids: Optional[List[str]] = Field(None, alias="entityIds")


class ReferentialUpdate(RequestModel):
    name: Optional[str] = None
    description: Optional[str] = None
    color: Optional[str] = None
    entity_ids: Optional[List[str]] = Field(None, alias="entityIds")


class RuleFields(RequestModel):
    name: Optional[str] = None
    description: Optional[str] = None
    rule_type: Optional[str] = Field(None, alias="ruleType")
    entity_id: Optional[str] = Field(None, alias="entityId")
    attribute_id: Optional[str] = Field(None, alias="attributeId")
    condition_expression: Optional[str] = Field(None, alias="conditionExpression")
    action_expression: Optional[str] = Field(None, alias="actionExpression")
    severity: Optional[str] = None
    is_enabled: Optional[bool] = Field(None, alias="isEnabled")
    dependencies: Optional[List[str]] = None


class RuleCreate(RuleFields):
    data_model_id: Optional[str] = Field(None, alias="dataModelId")


class CommentCreate(RequestModel):
    data_model_id: Optional[str] = Field(None, alias="dataModelId")
    content: Optional[str] = None
    entity_id: Optional[str] = Field(None, alias="entityId")
    attribute_id: Optional[str] = Field(None, alias="attributeId")
    relationship_id: Optional[str] = Field(None, alias="relationshipId")
    position_x: Optional[float] = Field(None, alias="positionX")
    position_y: Optional[float] = Field(None, alias="positionY")


class CommentUpdate(RequestModel):
    content: Optional[str] = None
    position_x: Optional[float] = Field(None, alias="positionX")
    position_y: Optional[float] = Field(None, alias="positionY")


# ============================
# Presence
# ============================

class PresenceRequest(RequestModel):
    project_id: str = Field(alias="projectId")


class OfflineRequest(RequestModel):
    project_id: Optional[str] = Field(None, alias="projectId")


# ============================
# Natural-language editing
# ============================

class ChatTurn(BaseModel):
    role: str
    content: str


class NLProcessRequest(RequestModel):
    request: Optional[str] = None
    data_model_id: Optional[str] = Field(None, alias="dataModelId")
    history: List[ChatTurn] = []


class NLChangesRequest(RequestModel):
    data_model_id: Optional[str] = Field(None, alias="dataModelId")
    changes: Dict[str, Any] = {}
