from clubguard.db.models.login_attempt import ClubLoginAttempt

__all__ = ["ClubLoginAttempt"]
