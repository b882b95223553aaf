from pydantic import AnyHttpUrl, BaseModel, ConfigDict, EmailStr, Field, model_validator
from pydantic.alias_generators import to_camel
from typing import Literal, Optional


class InstallerModel(BaseModel):
    """Strict camelCase payloads: unknown fields are rejected."""

    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)


class VercelCredentials(InstallerModel):
    token: str = Field(min_length=1)
    project_id: str = Field(min_length=1)
    team_id: Optional[str] = None


class WizardBootstrapRequest(InstallerModel):
    token: str = Field(min_length=1)
    installer_token: Optional[str] = None
    domain: Optional[str] = None


class PreflightRequest(InstallerModel):
    installer_token: Optional[str] = None
    access_token: str = Field(min_length=1)


class CreateProjectRequest(InstallerModel):
    installer_token: Optional[str] = None
    access_token: str = Field(min_length=1)
    organization_slug: str = Field(min_length=1)
    name: str = Field(min_length=2, max_length=64)
    db_pass: str = Field(min_length=12)
    region_smart_group: Optional[Literal["americas", "emea", "apac"]] = None


class ProjectStatusRequest(InstallerModel):
    installer_token: Optional[str] = None
    access_token: str = Field(min_length=1)
    project_ref: str = Field(min_length=1)


class HealthCheckSupabase(InstallerModel):
    url: AnyHttpUrl
    access_token: str = Field(min_length=1)
    project_ref: Optional[str] = None
    db_url: Optional[str] = None


class HealthCheckRequest(InstallerModel):
    supabase: HealthCheckSupabase
    vercel: Optional[VercelCredentials] = None


class RunSupabase(InstallerModel):
    url: AnyHttpUrl
    service_role_key: str = Field(min_length=1)
    anon_key: str = Field(min_length=1)
    db_url: Optional[str] = None
    access_token: Optional[str] = None


class RunAdmin(InstallerModel):
    company_name: str = Field(min_length=1, max_length=120)
    email: EmailStr
    password: str = Field(min_length=1)


class RunRequest(InstallerModel):
    installer_token: Optional[str] = None
    supabase: RunSupabase
    admin: RunAdmin
    vercel: Optional[VercelCredentials] = None
    skip_migrations: bool = False

    @model_validator(mode="after")
    def check_database_source(self):
        if not self.skip_migrations and not (self.supabase.db_url or self.supabase.access_token):
            raise ValueError("supabase.dbUrl or supabase.accessToken is required to run migrations")
        return self


class UnlockRequest(InstallerModel):
    vercel: VercelCredentials
    installer_token: Optional[str] = None
