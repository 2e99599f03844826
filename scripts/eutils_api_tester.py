"""Standalone script to hit the PubMed E-utilities and iCite APIs and inspect raw responses."""

import asyncio
import json
import logging

import aiohttp

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

EUTILS_URL = "https://eutils.ncbi.nlm.nih.gov/entrez/eutils"
ICITE_URL = "https://icite.od.nih.gov/api/pubs"
TERM = '"Vitreoretinopathy, Proliferative"[Mesh] AND methotrexate[tiab]'


async def esearch(session: aiohttp.ClientSession, term: str, retmax: int = 5) -> dict:
    """PMIDs for a Boolean expression, relevance order."""
    params = {"db": "pubmed", "term": term, "retmax": retmax, "retmode": "json", "sort": "relevance"}
    async with session.get(f"{EUTILS_URL}/esearch.fcgi", params=params) as resp:
        logger.info("esearch status: %s", resp.status)
        return await resp.json()


async def esummary(session: aiohttp.ClientSession, pmids: list[str]) -> dict:
    params = {"db": "pubmed", "id": ",".join(pmids), "retmode": "json"}
    async with session.get(f"{EUTILS_URL}/esummary.fcgi", params=params) as resp:
        logger.info("esummary status: %s", resp.status)
        return await resp.json()


async def efetch(session: aiohttp.ClientSession, pmid: str) -> str:
    """Raw PubmedArticleSet XML for one PMID."""
    params = {"db": "pubmed", "id": pmid, "retmode": "xml"}
    async with session.get(f"{EUTILS_URL}/efetch.fcgi", params=params) as resp:
        logger.info("efetch status: %s", resp.status)
        return await resp.text()


async def icite(session: aiohttp.ClientSession, pmids: list[str]) -> dict:
    async with session.get(ICITE_URL, params={"pmids": ",".join(pmids)}) as resp:
        logger.info("icite status: %s", resp.status)
        return await resp.json()


async def main() -> None:
    async with aiohttp.ClientSession() as session:
        logger.info("--- esearch for '%s' ---", TERM)
        search = await esearch(session, TERM)
        print(json.dumps(search, indent=2))

        pmids = search.get("esearchresult", {}).get("idlist", [])
        if not pmids:
            return

        logger.info("--- esummary for %s ---", pmids)
        print(json.dumps(await esummary(session, pmids), indent=2))

        logger.info("--- efetch for %s ---", pmids[0])
        print((await efetch(session, pmids[0]))[:3000])

        logger.info("--- icite for %s ---", pmids)
        print(json.dumps(await icite(session, pmids), indent=2))


if __name__ == "__main__":
    asyncio.run(main())
