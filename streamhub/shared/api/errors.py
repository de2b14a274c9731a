E_INTERNAL = 'E_INTERNAL_ERROR'
E_INVALID_PARAMS = 'E_INVALID_PARAMS'
E_UNAVAILABLE = 'E_SERVICE_UNAVAILABLE'
