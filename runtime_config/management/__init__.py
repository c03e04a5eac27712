from .service import ConfigurationManagementService, RequestContext

__all__ = ["ConfigurationManagementService", "RequestContext"]
