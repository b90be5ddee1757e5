class ElectionError(Exception):
    """Erreur de base : l'opération est rejetée sans aucun effet sur l'état"""
    pass

class AuthorizationError(ElectionError):
    """L'appelant n'a pas le rôle requis (gestionnaire ou votant inscrit)"""
    pass

class WindowError(ElectionError):
    """Opération tentée en dehors de la période autorisée"""
    pass

class AlreadyPublishedError(ElectionError):
    """Les résultats ont déjà été publiés"""
    pass

class ResultsMismatchError(ElectionError):
    """Résultats incompatibles avec les options de l'élection"""
    pass

class UnknownContractError(ElectionError):
    """Aucun contrat n'est déployé à cette adresse"""
    pass

class DatabaseError(Exception):
    """Exception personnalisée pour les erreurs de base de données"""
    pass
