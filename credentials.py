from pymongo.errors import DuplicateKeyError

from database import Database
from errors import Conflict, InternalError, Unauthorized
from logconfig import get_logger
from schemas import User
from security import PasswordHasher

logger = get_logger(__name__)

INVALID_LOGIN = "Invalid username or password"


class CredentialStore:
    def __init__(self, database: Database, hasher: PasswordHasher):
        self.database = database
        self.hasher = hasher

    def register(self, username: str, password: str) -> str:
        users = self.database.users
        if users.find_one({"username": username}, {"_id": 1}):
            raise Conflict("Username is already taken")

        user = User(username=username, password=self.hasher.hash(password))
        try:
            result = users.insert_one(user.model_dump())
        except DuplicateKeyError:
            # Lost a race with a concurrent registration of the same name.
            raise Conflict("Username is already taken")
        if not result.inserted_id:
            raise InternalError("Error registering user")

        logger.info("user_registered", user_id=str(result.inserted_id))
        return str(result.inserted_id)

    def verify_login(self, username: str, password: str) -> str:
        user = self.database.users.find_one({"username": username}, {"password": 1})
        if not user:
            self.hasher.dummy_verify()
            raise Unauthorized(INVALID_LOGIN)
        if not self.hasher.verify(password, user.get("password")):
            raise Unauthorized(INVALID_LOGIN)
        return str(user["_id"])
