"""
Health check utilities for the application.
"""

from typing import TYPE_CHECKING, Any, Dict

from .logging_config import get_logger

if TYPE_CHECKING:
    from ..services.boutique import BoutiqueService

logger = get_logger(__name__)


def check_health(service: 'BoutiqueService') -> bool:
    """Check the store, the identity and both live subscriptions.

    Returns:
        True if every component is healthy, False otherwise
    """
    unhealthy = [name for name, status in get_health_status(service).items() if not status.get('healthy', False)]
    if unhealthy:
        logger.warning(f'Unhealthy components: {", ".join(unhealthy)}')
        return False

    logger.info('All system components are healthy')
    return True


def get_health_status(service: 'BoutiqueService') -> Dict[str, Any]:
    """Get detailed health status of all components.

    Returns:
        Dictionary with health status of each component
    """
    session = service.session_context.current()
    auth = service.session_context.auth
    health_status = {
        'firestore': {
            'healthy': session.store is not None,
            'service': 'Cloud Firestore',
            'project': service.config.firebase.project_id if service.config.firebase else None
        },
        'identity': {
            'healthy': auth.identity is not None,
            'service': 'Firebase Identity Toolkit',
            'state': auth.state.value
        },
    }

    for name, subscription in (('memories', service.memories), ('projects', service.projects)):
        health_status[f'{name}_subscription'] = {
            'healthy': subscription.active and subscription.last_error is None,
            'loading': subscription.loading,
            'records': len(subscription.records),
            'error': subscription.last_error
        }

    return health_status


def get_system_info(service: 'BoutiqueService') -> Dict[str, Any]:
    """Get system information and configuration.

    Returns:
        Dictionary with system information
    """
    config = service.config
    return {
        'service_name': 'Forever Vivid',
        'version': '1.0.0',
        'configuration': {
            'environment': config.environment,
            'app_id': config.app_id,
            'pre_issued_token': config.auth.initial_auth_token is not None
        },
        'health_status': get_health_status(service)
    }
