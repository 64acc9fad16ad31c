from lecture_qa.services.temp_file_manager.manager import SCOPES, TempFileManagerService

__all__ = ["TempFileManagerService", "SCOPES"]
