"""
Pydantic Models for Engine Results

Analysis, repair, session and batch results handed to the presentation
layer. Field names follow the camelCase keys consumed by the front end.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field


class AnalysisMetadata(BaseModel):
    """Descriptive metadata extracted from a manifest"""
    version: Optional[str] = Field(None, description="SCORM schema version")
    title: Optional[str] = Field(None, description="Course title from LOM metadata")
    launchFile: Optional[str] = Field(None, description="href of the primary resource")


class AnalysisReport(BaseModel):
    """Resume-capability classification of one package"""
    model_config = ConfigDict(frozen=True)

    success: bool = Field(..., description="Whether the package could be analyzed")
    hasManifest: bool = Field(default=False, description="imsmanifest.xml was found")
    resumeCapable: bool = Field(default=False, description="Package can persist learner progress")
    details: List[str] = Field(default_factory=list, description="Human-readable findings in order")
    metadata: AnalysisMetadata = Field(default_factory=AnalysisMetadata)
    scoCount: int = Field(default=0, ge=0, description="Resources flagged as SCO")
    organizationCount: int = Field(default=0, ge=0, description="Organizations in the manifest")
    apiCalls: List[str] = Field(default_factory=list, description="SCORM API call labels found in scripts")
    error: Optional[str] = Field(None, description="Error message when success is false")
    errorType: Optional[str] = Field(None, description="Error taxonomy name")

    @classmethod
    def failure(cls, error: str, error_type: str, has_manifest: bool = False) -> "AnalysisReport":
        return cls(success=False, hasManifest=has_manifest, error=error, errorType=error_type)


class RepairReport(BaseModel):
    """Ordered log of the repairs applied to one package"""
    success: bool = Field(..., description="Whether a repaired archive was produced")
    repairs: List[str] = Field(default_factory=list, description="Applied fixes in application order")
    warnings: List[str] = Field(default_factory=list, description="Degraded-but-successful conditions")
    launchFile: Optional[str] = Field(None, description="Launch file relative to the manifest")
    launchPath: Optional[str] = Field(None, description="Launch file relative to the package root")
    outputPath: Optional[str] = Field(None, description="Path of the repaired archive")
    error: Optional[str] = Field(None, description="Error message when success is false")
    errorType: Optional[str] = Field(None, description="Error taxonomy name")

    @classmethod
    def failure(cls, error: str, error_type: str, repairs: Optional[List[str]] = None) -> "RepairReport":
        return cls(success=False, repairs=list(repairs or []), error=error, errorType=error_type)


class PlayerSession(BaseModel):
    """A disposable extraction of a repaired package used for playback"""
    sessionId: str = Field(..., pattern=r"^[0-9a-f]+$", description="Opaque random session token")
    directory: str = Field(..., description="Directory owning the extracted files")
    launchFile: Optional[str] = Field(None, description="Launch file relative to the session root")

    @computed_field
    @property
    def playerUrl(self) -> str:
        return f"/play/{self.sessionId}/{self.launchFile or 'index.html'}"


class InstrumentationResult(BaseModel):
    """Outcome of instrumenting every markup document in a tree"""
    filesScanned: int = Field(default=0, ge=0)
    filesModified: int = Field(default=0, ge=0)
    injections: Dict[str, int] = Field(default_factory=dict, description="Documents changed per snippet")
    failed: List[str] = Field(default_factory=list, description="Relative paths that could not be rewritten")


class AnalysisEntry(AnalysisReport):
    """Analysis report tagged with its originating archive"""
    filename: str
    path: str
    size: Optional[int] = Field(None, ge=0, description="Archive size in bytes")
    updatedFile: Optional[str] = Field(None, description="Instrumented copy filename")


class RepairEntry(RepairReport):
    """Repair report tagged with its originating archive and player session"""
    filename: str
    path: str
    sessionId: Optional[str] = None
    playerUrl: Optional[str] = None
    repairedFile: Optional[str] = None


class AnalysisSummary(BaseModel):
    totalFiles: int
    successfullyAnalyzed: int
    resumeCapable: int
    failed: int
    folderPath: str


class RepairSummary(BaseModel):
    totalFiles: int
    repaired: int
    playable: int
    failed: int
    folderPath: str


class AnalysisBatchResult(BaseModel):
    """Per-archive analysis results; the summary is always derived from them"""
    success: bool = True
    folderPath: str
    results: List[AnalysisEntry] = Field(default_factory=list)

    @computed_field
    @property
    def summary(self) -> AnalysisSummary:
        succeeded = [r for r in self.results if r.success]
        return AnalysisSummary(
            totalFiles=len(self.results),
            successfullyAnalyzed=len(succeeded),
            resumeCapable=sum(1 for r in succeeded if r.resumeCapable),
            failed=len(self.results) - len(succeeded),
            folderPath=self.folderPath,
        )


class RepairBatchResult(BaseModel):
    """Per-archive repair results; the summary is always derived from them"""
    success: bool = True
    folderPath: str
    results: List[RepairEntry] = Field(default_factory=list)

    @computed_field
    @property
    def summary(self) -> RepairSummary:
        succeeded = [r for r in self.results if r.success]
        return RepairSummary(
            totalFiles=len(self.results),
            repaired=len(succeeded),
            playable=sum(1 for r in succeeded if r.sessionId and r.launchFile),
            failed=len(self.results) - len(succeeded),
            folderPath=self.folderPath,
        )


class FolderRequest(BaseModel):
    """Request body naming a folder of archives"""
    folderPath: str = Field(..., min_length=1, description="Folder containing .zip packages")


class FileRequest(BaseModel):
    """Request body naming one archive on disk"""
    filePath: str = Field(..., min_length=1, description="Path of a .zip package")
